"""Loop control API for Loop Runner.

Exposes the loop's state, configuration and memory knobs, start/stop, the
runtime's model list and the live event stream.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from loop_runner.core.broadcast import BroadcastHub, sse_stream
from loop_runner.core.controller import LoopController
from loop_runner.core.store import LoopStore, ModelRef, MonitorConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["loop"])

MIN_INTERVAL_MS = 1000


# =============================================================================
# Request/Response Models
# =============================================================================


class ConfigUpdate(BaseModel):
    """Partial configuration; only the fields sent are changed."""
    model: Optional[ModelRef] = None
    system: Optional[str] = None
    user: Optional[str] = None
    working: Optional[str] = None
    persistent: Optional[str] = None
    monitor: Optional[MonitorConfig] = None
    interval: Optional[int] = Field(None, ge=MIN_INTERVAL_MS, description="Milliseconds between iterations")
    max_iterations: Optional[int] = Field(None, ge=0, description="0 means unbounded")
    auto_approve: Optional[bool] = None


class WorkingUpdate(BaseModel):
    """New working memory."""
    working: str = ""


class PersistentUpdate(BaseModel):
    """New persistent memory."""
    persistent: str = ""


class ModelResponse(BaseModel):
    """A model offered by the agent runtime."""
    provider_id: str
    model_id: str
    name: str


# =============================================================================
# Dependencies
# =============================================================================


def get_store(request: Request) -> LoopStore:
    return request.app.state.store


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_controller(request: Request) -> LoopController:
    return request.app.state.controller


# =============================================================================
# State and Configuration
# =============================================================================


@router.get("/state")
async def get_state(store: LoopStore = Depends(get_store)) -> dict:
    """Current run state and configuration."""
    return store.snapshot()


@router.get("/history")
async def get_history(store: LoopStore = Depends(get_store)) -> list[dict]:
    """Recorded iterations, oldest first."""
    return store.history()


@router.post("/config")
async def update_config(
    update: ConfigUpdate,
    store: LoopStore = Depends(get_store),
    hub: BroadcastHub = Depends(get_hub),
) -> dict:
    """Merge the given fields into the configuration."""
    # null only clears the monitor; other nulls are ignored
    changes = {
        key: value
        for key, value in update.model_dump(exclude_unset=True).items()
        if value is not None or key == "monitor"
    }
    store.update_config(changes)

    config = store.config_dict()
    hub.publish({"type": "config", "config": config})
    logger.info(f"Configuration updated: {sorted(changes)}")

    return {"ok": True, "config": config}


@router.post("/working")
async def set_working_memory(
    update: WorkingUpdate,
    store: LoopStore = Depends(get_store),
    hub: BroadcastHub = Depends(get_hub),
) -> dict:
    """Replace working memory (used by the next iteration only)."""
    store.set_working(update.working)
    hub.publish({"type": "config", "config": store.config_dict()})
    return {"ok": True}


@router.post("/persistent")
async def set_persistent_memory(
    update: PersistentUpdate,
    store: LoopStore = Depends(get_store),
    hub: BroadcastHub = Depends(get_hub),
) -> dict:
    """Replace persistent memory."""
    store.set_persistent(update.persistent)
    hub.publish({"type": "config", "config": store.config_dict()})
    return {"ok": True}


# =============================================================================
# Loop Control
# =============================================================================


@router.post("/start")
async def start_loop(controller: LoopController = Depends(get_controller)) -> dict:
    """Start the loop; does nothing if it is already running."""
    started = controller.start()
    if not started:
        logger.info("Start requested while loop already running")
    return {"ok": True, "started": started}


@router.post("/stop")
async def stop_loop(controller: LoopController = Depends(get_controller)) -> dict:
    """Ask the loop to stop at its next checkpoint."""
    controller.stop()
    return {"ok": True}


@router.get("/models")
async def list_models(
    controller: LoopController = Depends(get_controller),
) -> list[ModelResponse]:
    """Models offered by the agent runtime (empty if unavailable)."""
    models = await controller.list_models()
    return [
        ModelResponse(provider_id=m.provider_id, model_id=m.model_id, name=m.name)
        for m in models
    ]


# =============================================================================
# Event Stream
# =============================================================================


@router.get("/events")
async def events(request: Request, hub: BroadcastHub = Depends(get_hub)) -> StreamingResponse:
    """Server-sent events for every loop transition."""
    subscriber = hub.subscribe()
    heartbeat = request.app.state.settings.sse_heartbeat_seconds

    return StreamingResponse(
        sse_stream(hub, subscriber, heartbeat_s=heartbeat),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
