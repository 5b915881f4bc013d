"""
Collaboration relay main application.

One WebSocket endpoint for hosts and members, plus health checks. The app
is built by create_app() so tests can run isolated relays side by side.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse

from collab_relay.components.endpoints.handlers import SessionEndpoint
from collab_relay.config.logging import relay_logger as logger
from collab_relay.config.logging import setup_logging
from collab_relay.config.settings import Settings, get_settings
from collab_relay.relay import SessionRelay


def create_app(relay: SessionRelay | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application around a relay.

    Args:
        relay: Relay to serve. A new one is created from settings if omitted.
        settings: Settings for a new relay (ignored when relay is given).
    """
    relay = relay or SessionRelay(settings=settings or get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Starts the liveness monitor (and the history recorder when
        configured); on shutdown closes every session and socket.
        """
        setup_logging(relay.settings)
        for problem in relay.settings.validate_production_settings():
            logger.warning("Configuration problem", problem=problem)
        logger.info(
            "Starting collaboration relay",
            port=relay.settings.relay_port,
            env=relay.settings.environment,
            history=relay.settings.history_enabled,
        )
        await relay.start()

        yield

        logger.info("Shutting down collaboration relay")
        await relay.shutdown()

    app = FastAPI(
        title="Collaboration Relay",
        description="Live host/member collaboration sessions over WebSockets",
        version=relay.settings.relay_version,
        lifespan=lifespan,
    )
    app.state.relay = relay

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/ws/health")
    def health_check(request: Request):
        """Basic health check endpoint."""
        current: SessionRelay = request.app.state.relay
        try:
            stats = {
                "connections": current.total_connections,
                "sessions": len(current.registry),
            }
        except Exception as e:
            logger.warning("Failed to get stats in health check", error=str(e))
            stats = {"error": "stats_unavailable"}
        return {
            "status": "healthy",
            "service": "collab-relay",
            "version": request.app.version,
            "environment": current.settings.environment,
            **stats,
        }

    @app.get("/ws/health/detailed")
    def detailed_health_check(request: Request):
        """Detailed health check with component stats and metrics."""
        current: SessionRelay = request.app.state.relay
        checks = {
            "service": "collab-relay",
            "environment": current.settings.environment,
            "relay": current.get_stats(),
            "metrics": current.metrics.get_snapshot_sync(),
        }
        healthy = not current.is_shutting_down()
        checks["status"] = "healthy" if healthy else "shutting_down"
        if not healthy:
            return JSONResponse(content=checks, status_code=503)
        return checks

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/ws")
    async def session_websocket(websocket: WebSocket):
        """
        WebSocket endpoint for hosts and members.

        Every connection starts unbound; send `create` to host a session or
        `join` to enter one.
        """
        endpoint = SessionEndpoint(websocket, websocket.app.state.relay)
        await endpoint.run()

    return app


app = create_app()
