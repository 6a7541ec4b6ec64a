"""
Configuration models for the voice relay.

This module defines dataclasses for the different configuration domains,
providing type safety and validation for all relay settings.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from voicerelay.config.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_BITS_PER_SAMPLE,
    DEFAULT_CHANNELS,
    DEFAULT_CLOSE_TIMEOUT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_MODEL,
    DEFAULT_PING_INTERVAL,
    DEFAULT_PING_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_QUIET_DURATION,
    DEFAULT_RELAY_URL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_SILENCE_THRESHOLD,
    DEFAULT_SMOOTHING_WINDOW,
)


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class ServerConfig:
    """Server configuration settings."""

    host: str = "0.0.0.0"
    port: int = 8000
    environment: Environment = Environment.PRODUCTION
    debug: bool = False


@dataclass
class OpenAIConfig:
    """Upstream realtime voice service configuration."""

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL

    def get_websocket_url(self) -> str:
        """Get the realtime WebSocket URL for the configured model."""
        return f"{self.base_url}/v1/realtime?model={self.model}"

    def get_headers(self) -> Dict[str, str]:
        """Get headers for upstream authentication."""
        if not self.api_key:
            raise ValueError("OpenAI API key is required")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }


@dataclass
class RelayConfig:
    """Upstream session relay configuration."""

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    instructions: str = DEFAULT_INSTRUCTIONS
    ping_interval: int = DEFAULT_PING_INTERVAL
    ping_timeout: int = DEFAULT_PING_TIMEOUT
    close_timeout: int = DEFAULT_CLOSE_TIMEOUT


@dataclass
class AudioConfig:
    """Audio transport configuration."""

    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = DEFAULT_CHANNELS
    bits_per_sample: int = DEFAULT_BITS_PER_SAMPLE


@dataclass
class EndpointerConfig:
    """Silence endpointing configuration."""

    silence_threshold: float = DEFAULT_SILENCE_THRESHOLD
    quiet_duration: float = DEFAULT_QUIET_DURATION
    smoothing_window: int = DEFAULT_SMOOTHING_WINDOW


@dataclass
class ClientConfig:
    """Trainee polling client configuration."""

    relay_url: str = DEFAULT_RELAY_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


@dataclass
class LoggingConfig:
    """Logging configuration settings."""

    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_dir: Path = field(default_factory=lambda: Path("logs"))
    log_filename: str = "voicerelay.log"
    max_log_size: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5


@dataclass
class MockConfig:
    """Mock upstream configuration."""

    enabled: bool = False
    fragments_per_response: int = 5


@dataclass
class SecurityConfig:
    """Security-related configuration."""

    allowed_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class ApplicationConfig:
    """Master application configuration containing all domain configs."""

    server: ServerConfig = field(default_factory=ServerConfig)
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    endpointer: EndpointerConfig = field(default_factory=EndpointerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    mock: MockConfig = field(default_factory=MockConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.mock.enabled and not self.openai.api_key:
            errors.append(
                "OpenAI API key is required when not in mock mode. Please set the OPENAI_API_KEY environment variable or enable mock mode by setting VOICERELAY_USE_MOCK=true"
            )

        if self.server.port <= 0 or self.server.port > 65535:
            errors.append("Server port must be between 1 and 65535")

        if self.audio.sample_rate <= 0:
            errors.append("Audio sample rate must be positive")

        if self.relay.connect_timeout <= 0:
            errors.append("Relay connect timeout must be positive")

        if self.endpointer.quiet_duration <= 0:
            errors.append("Endpointer quiet duration must be positive")

        if self.endpointer.silence_threshold < 0:
            errors.append("Endpointer silence threshold must not be negative")

        return errors

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.server.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.server.environment == Environment.PRODUCTION
