"""
Centralized configuration settings for voicerelay.

This module provides the main configuration interface for the relay,
including singleton access to the configuration and per-domain accessors.
"""

from typing import List, Optional

from .env_loader import get_environment_info, load_application_config
from .models import ApplicationConfig


# Global configuration instance
_config: Optional[ApplicationConfig] = None


def get_config() -> ApplicationConfig:
    """Get the global application configuration instance."""
    global _config
    if _config is None:
        _config = load_application_config()
    return _config


def reload_config() -> ApplicationConfig:
    """Reload configuration from environment variables."""
    global _config
    _config = load_application_config()
    return _config


def set_config(config: Optional[ApplicationConfig]) -> None:
    """Set a custom configuration instance (useful for testing)."""
    global _config
    _config = config


def validate_configuration() -> List[str]:
    """Validate the current configuration and return any errors."""
    return get_config().validate()


def print_configuration_summary() -> None:
    """Print a summary of the current configuration."""
    config = get_config()
    env_info = get_environment_info()

    print("=== voicerelay Configuration Summary ===")
    print(f"Environment: {config.server.environment.value}")
    print(f"Server: {config.server.host}:{config.server.port}")
    print(f"Mock mode: {config.mock.enabled}")
    print(f"OpenAI model: {config.openai.model}")
    print(f"Connect timeout: {config.relay.connect_timeout}s")
    print(
        f"Endpointer: threshold={config.endpointer.silence_threshold} "
        f"quiet={config.endpointer.quiet_duration}s"
    )
    print(f"Log level: {config.logging.level.value}")
    print(f"Audio: pcm16 @ {config.audio.sample_rate}Hz")
    print(f"Environment variables loaded: {env_info['environment_variables_loaded']}")
    print(f".env file present: {env_info['dotenv_loaded']}")

    errors = validate_configuration()
    if errors:
        print("\nConfiguration Issues:")
        for error in errors:
            print(f"  - {error}")
    else:
        print("\nConfiguration is valid")


# Convenience aliases for common configurations
def server_config():
    """Get server configuration."""
    return get_config().server


def openai_config():
    """Get upstream service configuration."""
    return get_config().openai


def relay_config():
    """Get relay configuration."""
    return get_config().relay


def audio_config():
    """Get audio configuration."""
    return get_config().audio


def endpointer_config():
    """Get endpointing configuration."""
    return get_config().endpointer


def client_config():
    """Get polling client configuration."""
    return get_config().client


def logging_config():
    """Get logging configuration."""
    return get_config().logging


def mock_config():
    """Get mock upstream configuration."""
    return get_config().mock


def is_mock_mode() -> bool:
    """Check if running against the mock upstream."""
    return get_config().mock.enabled


def is_development() -> bool:
    """Check if running in development mode."""
    return get_config().is_development()


def is_production() -> bool:
    """Check if running in production mode."""
    return get_config().is_production()
