"""Loop Runner - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from loop_runner import __version__
from loop_runner.config import Settings, settings as default_settings
from loop_runner.api.loop import router as loop_router
from loop_runner.core.broadcast import BroadcastHub
from loop_runner.core.controller import LoopController
from loop_runner.core.monitor import MonitorRunner
from loop_runner.core.store import LoopConfig, LoopStore
from loop_runner.gateway.base import AgentGateway
from loop_runner.gateway.opencode import OpencodeGateway

logger = logging.getLogger(__name__)

# Template directory
TEMPLATES_DIR = Path(__file__).parent / "web" / "templates"

templates = Jinja2Templates(directory=TEMPLATES_DIR)


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[AgentGateway] = None,
) -> FastAPI:
    """Build the application with its own store, hub and loop controller."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        # Startup
        logger.info(f"Starting {settings.app_name}...")

        store = LoopStore(LoopConfig.from_settings(settings))
        hub = BroadcastHub(store.snapshot, queue_size=settings.subscriber_queue_size)
        controller = LoopController(
            store=store,
            hub=hub,
            gateway=gateway or OpencodeGateway.from_settings(settings),
            monitor=MonitorRunner(cwd=settings.monitor_cwd),
        )

        app.state.settings = settings
        app.state.store = store
        app.state.hub = hub
        app.state.controller = controller

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.app_name}...")
        try:
            await controller.shutdown()
        except Exception as e:
            logger.error(f"Error stopping loop: {e}")
        hub.close()

    app = FastAPI(
        title=settings.app_name,
        description="Continuous agent prompt loop",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.include_router(loop_router)

    # =========================================================================
    # Web UI Routes
    # =========================================================================

    @app.get("/", response_class=HTMLResponse)
    async def dashboard(request: Request):
        """Status page."""
        store: LoopStore = request.app.state.store
        return templates.TemplateResponse(
            request,
            "index.html",
            {
                "title": settings.app_name,
                "config": store.config,
                "state": store.state,
                "history": list(reversed(store.history()))[:10],
            },
        )

    # =========================================================================
    # API Routes
    # =========================================================================

    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "running": request.app.state.store.state.running,
            "subscribers": request.app.state.hub.subscriber_count,
        }

    return app


app = create_app()


def run() -> None:
    """Run the development server."""
    import uvicorn

    logging.basicConfig(
        level=default_settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "loop_runner.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )


# =============================================================================
# Development server
# =============================================================================

if __name__ == "__main__":
    run()
