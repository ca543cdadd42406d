"""
BlueScout: FastAPI application entry point.

Builds the discovery controller and its collaborators on startup,
serves the REST API and the WebSocket event stream.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from api.routes import init_routes, router, scan_status
from api.websocket import ConnectionManager
from config import (
    API_HOST,
    API_PORT,
    CAPABILITY_PROFILES,
    LEVEL_GATED_CAPABILITIES,
    LOCATION_CAPABILITIES,
    LOG_LEVEL,
    PLATFORM_LEVEL,
    PREGRANTED_CAPABILITIES,
)
from discovery.bleak_radio import BleakRadio
from discovery.capabilities import CapabilityGate, build_profiles
from discovery.controller import DiscoveryController
from discovery.models import PlatformLevel
from discovery.prompts import PromptBroker, PromptPermissionBroker

# --- Logging ---
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(radio=None, permissions=None, prompts: PromptBroker | None = None) -> FastAPI:
    """Assemble the service. Collaborators can be swapped out for tests."""
    prompts = prompts or PromptBroker()
    permissions = permissions or PromptPermissionBroker(prompts, PREGRANTED_CAPABILITIES)
    radio = radio or BleakRadio(prompts)

    profiles = build_profiles(CAPABILITY_PROFILES, LEVEL_GATED_CAPABILITIES, LOCATION_CAPABILITIES)
    gate = CapabilityGate(profiles, permissions)
    controller = DiscoveryController(gate, radio, PlatformLevel.parse(PLATFORM_LEVEL))
    ws_manager = ConnectionManager(status=scan_status)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start/stop the discovery controller."""
        logger.info("Starting BlueScout services...")
        try:
            controller.on_event(ws_manager.handle_event)
            prompts.on_event(ws_manager.handle_event)
            await controller.start()
            logger.info(f"BlueScout ready. API: {API_HOST}:{API_PORT}, level: {PLATFORM_LEVEL}")
            yield
        except Exception as e:
            logger.error(f"Startup failed: {e}", exc_info=True)
            raise
        finally:
            logger.info("Shutting down BlueScout services...")
            await controller.stop()

    app = FastAPI(
        title="BlueScout",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173", "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Inject services into routes
    init_routes(controller, prompts)
    app.include_router(router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await ws_manager.connect(websocket)
        try:
            while True:
                # Keep the connection alive; we don't expect client messages
                await websocket.receive_text()
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)
        except Exception:
            await ws_manager.disconnect(websocket)

    app.state.controller = controller
    app.state.prompts = prompts
    app.state.ws_manager = ws_manager
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level=LOG_LEVEL.lower(),
    )
