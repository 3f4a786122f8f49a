"""
Relay HTTP/WebSocket server.

- GET /          browser page (static/index.html)
- /static/*      page assets
- GET /health    liveness
- GET /trips     current trip snapshot
- WS  /ws, /     envelope protocol, one ConnectionSession per socket
"""

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from logging_setup import get_logger, Component
from .config import RelayConfig, get_config
from .connection import ConnectionSession
from .instructions import get_greeting_log
from .registry import ClientRegistry
from .trip_store import REQUIRED_FIELDS, TripStore
from .upstream import GeminiLiveConnector, UpstreamConnector


logger = get_logger(Component.RELAY_SERVER)

STATIC_DIR = Path(__file__).parent / "static"


def create_app(
    config: Optional[RelayConfig] = None,
    *,
    connector: Optional[UpstreamConnector] = None,
    store: Optional[TripStore] = None,
    registry: Optional[ClientRegistry] = None,
) -> FastAPI:
    """
    Build the relay application.

    The trip store and client registry are created here and injected into every
    connection; the store pushes each new snapshot to the registry.
    """
    store = store if store is not None else TripStore()
    registry = registry if registry is not None else ClientRegistry()
    store.subscribe(registry.broadcast_trips)

    scenario = config.scenario if config is not None else None
    if connector is None:
        connector = GeminiLiveConnector(config or get_config())
    tool_name = getattr(connector, "tool_name", "saveTrip")
    required_fields = getattr(connector, "required_fields", REQUIRED_FIELDS)
    greeting = get_greeting_log(scenario)

    app = FastAPI(title="Trip Voice Relay")
    app.state.store = store
    app.state.registry = registry
    app.state.connector = connector

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.get("/", include_in_schema=False)
    async def index():
        return FileResponse(STATIC_DIR / "index.html")

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "component": "relay_server", "clients": len(registry)}

    @app.get("/trips")
    async def list_trips():
        """Trips accepted so far, oldest first."""
        trips = store.to_wire()
        return {"trips": trips, "count": len(trips)}

    async def relay_socket(websocket: WebSocket):
        await websocket.accept()
        session = ConnectionSession(
            websocket,
            connector=connector,
            store=store,
            registry=registry,
            tool_name=tool_name,
            required_fields=required_fields,
            greeting=greeting,
        )
        try:
            await session.run()
        except WebSocketDisconnect:
            session.logger.info("Client went away during setup")
        except Exception as e:
            # Don't crash the server - log and drop this connection
            session.logger.exception(
                "Connection failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    app.add_api_websocket_route("/ws", relay_socket)
    app.add_api_websocket_route("/", relay_socket)

    return app
