"""
FastAPI server exposing the realtime voice relay to polling clients.

The browser page driving the hotel call simulator cannot hold a WebSocket to
the upstream voice service, so it polls this server instead:

- ``GET /api/ws`` connects upstream if needed and returns
  ``{isSessionCreated, responses}``, clearing the pending events
- ``POST /api/ws`` forwards one client event upstream (503 until the session is ready)
- ``DELETE /api/ws`` closes the upstream session (always 200)
- ``GET /api/ws/audio`` hands out the next reply audio fragments in order

One ``PollingBridge`` per application is stored on ``app.state`` and injected
into the routes. Run with ``python -m voicerelay.main`` or
``uvicorn voicerelay.main:create_app --factory``.
"""

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voicerelay.config import get_config
from voicerelay.config.env_loader import load_env_file
from voicerelay.config.logging_config import configure_logging
from voicerelay.config.models import ApplicationConfig
from voicerelay.exceptions import ConnectTimeout, NotReady, RelayError, TransportError
from voicerelay.handlers.error_handler import ErrorContext, ErrorHandler, ErrorSeverity
from voicerelay.local.mock_upstream import mock_connect
from voicerelay.models.relay_state import ConnectionState
from voicerelay.polling_bridge import PollingBridge
from voicerelay.session_connection import Connector, SessionConnection

logger = configure_logging()

ERROR_STATUS = {
    ConnectTimeout: 504,
    TransportError: 502,
    NotReady: 503,
}


def get_bridge(request: Request) -> PollingBridge:
    """Dependency returning the application's bridge."""
    return request.app.state.bridge


def create_app(
    config: Optional[ApplicationConfig] = None, connector: Optional[Connector] = None
) -> FastAPI:
    """Build the relay application.

    Args:
        config: Application configuration; loaded from the environment when None
        connector: Upstream transport opener; the mock upstream is used when
            mock mode is enabled, ``websockets`` otherwise
    """
    if config is None:
        load_env_file()
        config = get_config()

    if connector is None and config.mock.enabled:
        connector = mock_connect(config.mock.fragments_per_response)
        logger.info("Mock upstream enabled; no external service will be contacted")

    error_handler = ErrorHandler(logger)
    connection = SessionConnection(
        config.openai, config.relay, connector=connector, error_handler=error_handler
    )

    app = FastAPI(
        title="Voice Relay",
        description="Polling relay for the hotel call simulator's realtime voice session",
        version="1.0.0",
    )
    app.state.config = config
    app.state.bridge = PollingBridge(connection)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        status = ERROR_STATUS.get(type(exc), 500)
        if status != 503:
            await error_handler.handle_error(
                exc,
                context=ErrorContext.CLIENT,
                severity=ErrorSeverity.MEDIUM,
                operation=f"{request.method} {request.url.path}",
            )
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.get("/api/ws")
    async def poll(bridge: PollingBridge = Depends(get_bridge)):
        """Connect if needed and return the pending events."""
        snapshot = await bridge.poll()
        return snapshot.model_dump(by_alias=True)

    @app.post("/api/ws")
    async def forward(request: Request, bridge: PollingBridge = Depends(get_bridge)):
        """Forward one client event upstream verbatim."""
        try:
            event = await request.json()
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Body is not valid JSON"})
        if not isinstance(event, dict):
            return JSONResponse(
                status_code=400, content={"error": "Event must be a JSON object"}
            )
        await bridge.forward(event)
        return {"status": "sent"}

    @app.delete("/api/ws")
    async def teardown(bridge: PollingBridge = Depends(get_bridge)):
        """Close the upstream session."""
        await bridge.teardown()
        return {"status": "closed"}

    @app.get("/api/ws/audio")
    async def drain_audio(
        max_fragments: Optional[int] = Query(default=None, ge=1),
        bridge: PollingBridge = Depends(get_bridge),
    ):
        """Hand out the next reply audio fragments in arrival order."""
        drained = await bridge.drain_audio(max_fragments)
        return drained.model_dump(by_alias=True)

    @app.get("/")
    async def root():
        """Basic information about the service."""
        return {
            "name": "Voice Relay",
            "description": "Polling relay for the hotel call simulator's realtime voice session",
            "version": "1.0.0",
            "endpoints": {
                "GET /api/ws": "Connect if needed; return and clear pending events",
                "POST /api/ws": "Forward a client event upstream",
                "DELETE /api/ws": "Close the upstream session",
                "GET /api/ws/audio": "Drain reply audio fragments in order",
                "/stats": "Relay statistics",
                "/health": "Health check",
                "/config": "Non-secret configuration",
            },
            "audio_format": {
                "encoding": "pcm16",
                "sample_rate": config.audio.sample_rate,
                "channels": config.audio.channels,
            },
        }

    @app.get("/stats")
    async def get_stats(bridge: PollingBridge = Depends(get_bridge)):
        """Connection state, counters and error counts."""
        return bridge.get_stats()

    @app.get("/health")
    async def health_check(bridge: PollingBridge = Depends(get_bridge)):
        """Health status of the upstream session."""
        conn = bridge.connection
        if conn.is_ready:
            status, message = "healthy", "Upstream session is ready"
        elif conn.state == ConnectionState.IDLE:
            status, message = "idle", "No upstream session; the next poll will connect"
        else:
            status, message = "degraded", f"Upstream connection is {conn.state.value}"
        return {
            "status": status,
            "connection_state": conn.state.value,
            "session_ready": conn.session_ready,
            "message": message,
        }

    @app.get("/config")
    async def get_app_config():
        """Current configuration without secrets."""
        return _config_summary(config)

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close the upstream connection on shutdown."""
        logger.info("Application shutting down, closing upstream connection...")
        await app.state.bridge.teardown()

    return app


def _config_summary(config: ApplicationConfig) -> Dict[str, Any]:
    return {
        "server": {
            "host": config.server.host,
            "port": config.server.port,
            "environment": config.server.environment.value,
            "debug": config.server.debug,
        },
        "openai": {
            "model": config.openai.model,
            "websocket_url": config.openai.get_websocket_url(),
            "api_key_configured": bool(config.openai.api_key),
        },
        "relay": {
            "connect_timeout": config.relay.connect_timeout,
            "ping_interval": config.relay.ping_interval,
            "ping_timeout": config.relay.ping_timeout,
            "close_timeout": config.relay.close_timeout,
        },
        "audio": {
            "sample_rate": config.audio.sample_rate,
            "channels": config.audio.channels,
            "bits_per_sample": config.audio.bits_per_sample,
        },
        "endpointer": {
            "silence_threshold": config.endpointer.silence_threshold,
            "quiet_duration": config.endpointer.quiet_duration,
            "smoothing_window": config.endpointer.smoothing_window,
        },
        "mock": {
            "enabled": config.mock.enabled,
            "fragments_per_response": config.mock.fragments_per_response,
        },
        "security": {"allowed_origins": config.security.allowed_origins},
    }


def run_server() -> None:
    """Start the relay under uvicorn using environment configuration."""
    import uvicorn

    load_env_file()
    config = get_config()
    logger.info(f"Starting server on http://{config.server.host}:{config.server.port}")
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        loop="asyncio",
        timeout_keep_alive=30,
        log_level=config.logging.level.value.lower(),
    )


if __name__ == "__main__":
    run_server()
