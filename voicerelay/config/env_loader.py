"""
Environment variable loader for voicerelay configuration.

This module handles loading configuration from environment variables,
with type conversion, validation, and fallback to defaults.

Environment variables must be explicitly loaded using load_env_file() before
accessing any configuration functions.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, cast, get_origin

from dotenv import load_dotenv

from voicerelay.config.constants import (
    DEFAULT_BASE_URL,
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
from voicerelay.config.models import (
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

# Track if environment variables have been loaded
_env_loaded = False


def load_env_file(env_file: Optional[str] = None) -> None:
    """Load environment variables from a .env file.

    This function must be called before accessing any configuration functions.

    Args:
        env_file: Path to the .env file. If None, uses default behavior.
    """
    global _env_loaded
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()
    _env_loaded = True


def _check_env_loaded() -> None:
    """Check if environment variables have been loaded, raise error if not."""
    if not _env_loaded:
        raise RuntimeError(
            "Environment variables not loaded. Call load_env_file() before accessing configuration."
        )


T = TypeVar("T")


def safe_convert(value: Optional[str], target_type: Type[T], default: T) -> T:
    """Safely convert environment variable string to target type."""
    if value is None:
        return default

    try:
        if target_type == bool:
            return cast(T, value.lower() == "true")
        elif target_type == int:
            return cast(T, int(value))
        elif target_type == float:
            return cast(T, float(value))
        elif target_type == str:
            return cast(T, value)
        elif target_type == Path:
            return cast(T, Path(value))
        elif get_origin(target_type) == list:
            return cast(
                T,
                (
                    [item.strip() for item in value.split(",") if item.strip()]
                    if value
                    else default
                ),
            )
        elif callable(target_type):
            return cast(T, target_type(value))  # type: ignore
        else:
            return default
    except (ValueError, TypeError):
        return default


def safe_string_or_none(value: Optional[str]) -> Optional[str]:
    """Convert environment variable to string or None if empty."""
    if value is None or value.strip() == "":
        return None
    return value.strip()


def load_server_config() -> ServerConfig:
    """Load server configuration from environment variables."""
    _check_env_loaded()

    env_str = os.getenv("ENV", "production").lower()
    environment = (
        Environment.DEVELOPMENT if env_str == "development" else Environment.PRODUCTION
    )
    if env_str == "testing":
        environment = Environment.TESTING

    return ServerConfig(
        host=os.getenv("HOST", "0.0.0.0"),
        port=safe_convert(os.getenv("PORT"), int, 8000),
        environment=environment,
        debug=safe_convert(os.getenv("DEBUG"), bool, False),
    )


def load_openai_config() -> OpenAIConfig:
    """Load upstream service configuration from environment variables."""
    _check_env_loaded()

    return OpenAIConfig(
        api_key=safe_string_or_none(os.getenv("OPENAI_API_KEY")),
        model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
        base_url=os.getenv("OPENAI_API_BASE_URL", DEFAULT_BASE_URL),
    )


def load_relay_config() -> RelayConfig:
    """Load relay configuration from environment variables."""
    _check_env_loaded()

    return RelayConfig(
        connect_timeout=safe_convert(
            os.getenv("RELAY_CONNECT_TIMEOUT"), float, DEFAULT_CONNECT_TIMEOUT
        ),
        instructions=os.getenv("RELAY_INSTRUCTIONS", DEFAULT_INSTRUCTIONS),
        ping_interval=safe_convert(
            os.getenv("RELAY_PING_INTERVAL"), int, DEFAULT_PING_INTERVAL
        ),
        ping_timeout=safe_convert(
            os.getenv("RELAY_PING_TIMEOUT"), int, DEFAULT_PING_TIMEOUT
        ),
        close_timeout=safe_convert(
            os.getenv("RELAY_CLOSE_TIMEOUT"), int, DEFAULT_CLOSE_TIMEOUT
        ),
    )


def load_audio_config() -> AudioConfig:
    """Load audio configuration from environment variables."""
    _check_env_loaded()

    return AudioConfig(
        sample_rate=safe_convert(
            os.getenv("AUDIO_SAMPLE_RATE"), int, DEFAULT_SAMPLE_RATE
        ),
        channels=safe_convert(os.getenv("AUDIO_CHANNELS"), int, 1),
        bits_per_sample=safe_convert(os.getenv("AUDIO_BITS_PER_SAMPLE"), int, 16),
    )


def load_endpointer_config() -> EndpointerConfig:
    """Load endpointing configuration from environment variables."""
    _check_env_loaded()

    return EndpointerConfig(
        silence_threshold=safe_convert(
            os.getenv("ENDPOINTER_SILENCE_THRESHOLD"), float, DEFAULT_SILENCE_THRESHOLD
        ),
        quiet_duration=safe_convert(
            os.getenv("ENDPOINTER_QUIET_DURATION"), float, DEFAULT_QUIET_DURATION
        ),
        smoothing_window=safe_convert(
            os.getenv("ENDPOINTER_SMOOTHING_WINDOW"), int, DEFAULT_SMOOTHING_WINDOW
        ),
    )


def load_client_config() -> ClientConfig:
    """Load polling client configuration from environment variables."""
    _check_env_loaded()

    return ClientConfig(
        relay_url=os.getenv("CLIENT_RELAY_URL", DEFAULT_RELAY_URL),
        poll_interval=safe_convert(
            os.getenv("CLIENT_POLL_INTERVAL"), float, DEFAULT_POLL_INTERVAL
        ),
        request_timeout=safe_convert(
            os.getenv("CLIENT_REQUEST_TIMEOUT"), float, DEFAULT_REQUEST_TIMEOUT
        ),
    )


def load_logging_config() -> LoggingConfig:
    """Load logging configuration from environment variables."""
    _check_env_loaded()

    level = safe_convert(os.getenv("LOG_LEVEL", "INFO").upper(), LogLevel, LogLevel.INFO)
    return LoggingConfig(
        level=level,
        log_dir=safe_convert(os.getenv("LOG_DIR"), Path, Path("logs")),
        log_filename=os.getenv("LOG_FILENAME", "voicerelay.log"),
    )


def load_mock_config() -> MockConfig:
    """Load mock upstream configuration from environment variables."""
    _check_env_loaded()

    return MockConfig(
        enabled=safe_convert(os.getenv("VOICERELAY_USE_MOCK"), bool, False),
        fragments_per_response=safe_convert(
            os.getenv("VOICERELAY_MOCK_FRAGMENTS"), int, 5
        ),
    )


def load_security_config() -> SecurityConfig:
    """Load security configuration from environment variables."""
    _check_env_loaded()

    allowed_origins = os.getenv("ALLOWED_ORIGINS", "*")
    origins_list = [origin.strip() for origin in allowed_origins.split(",")]

    return SecurityConfig(allowed_origins=origins_list)


def load_application_config() -> ApplicationConfig:
    """Load complete application configuration from environment variables."""
    _check_env_loaded()

    config = ApplicationConfig(
        server=load_server_config(),
        openai=load_openai_config(),
        relay=load_relay_config(),
        audio=load_audio_config(),
        endpointer=load_endpointer_config(),
        client=load_client_config(),
        logging=load_logging_config(),
        mock=load_mock_config(),
        security=load_security_config(),
    )

    validation_errors = config.validate()
    if validation_errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(
            f"  - {error}" for error in validation_errors
        )
        raise ValueError(error_msg)

    return config


def get_environment_info() -> Dict[str, Any]:
    """Get information about current environment variables for debugging."""
    _check_env_loaded()

    return {
        "environment_variables_loaded": len(
            [
                k
                for k in os.environ.keys()
                if k.startswith(("OPENAI_", "RELAY_", "ENDPOINTER_", "CLIENT_", "LOG_"))
            ]
        ),
        "dotenv_loaded": Path(".env").exists(),
        "current_environment": os.getenv("ENV", "production"),
        "mock_mode": safe_convert(os.getenv("VOICERELAY_USE_MOCK"), bool, False),
        "openai_api_key_set": bool(os.getenv("OPENAI_API_KEY")),
    }
