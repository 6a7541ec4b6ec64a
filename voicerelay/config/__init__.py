"""
Configuration module for the voice relay.

This module provides centralized configuration management for the relay,
including constants, logging setup, and environment-based configuration.

Usage:

```python
from voicerelay.config import get_config, relay_config
from voicerelay.config.env_loader import load_env_file

load_env_file()
config = get_config()
print(f"Server: {config.server.host}:{config.server.port}")
print(f"Connect timeout: {relay_config().connect_timeout}s")

from voicerelay.config.logging_config import configure_logging
logger = configure_logging("my_module")
```
"""

from .constants import *
from .logging_config import configure_logging
from .models import (
    ApplicationConfig,
    AudioConfig,
    ClientConfig,
    EndpointerConfig,
    Environment,
    LoggingConfig,
    LogLevel,
    MockConfig,
    OpenAIConfig,
    RelayConfig,
    SecurityConfig,
    ServerConfig,
)
from .settings import (
    audio_config,
    client_config,
    endpointer_config,
    get_config,
    is_development,
    is_mock_mode,
    is_production,
    logging_config,
    mock_config,
    openai_config,
    print_configuration_summary,
    relay_config,
    reload_config,
    server_config,
    set_config,
    validate_configuration,
)

__all__ = [
    # Core configuration
    "get_config",
    "reload_config",
    "set_config",
    # Domain configs
    "server_config",
    "openai_config",
    "relay_config",
    "audio_config",
    "endpointer_config",
    "client_config",
    "logging_config",
    "mock_config",
    # Utilities
    "validate_configuration",
    "print_configuration_summary",
    "is_mock_mode",
    "is_development",
    "is_production",
    # Models
    "ApplicationConfig",
    "ServerConfig",
    "OpenAIConfig",
    "RelayConfig",
    "AudioConfig",
    "EndpointerConfig",
    "ClientConfig",
    "LoggingConfig",
    "MockConfig",
    "SecurityConfig",
    "Environment",
    "LogLevel",
    "configure_logging",
]
