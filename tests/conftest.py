"""
Pytest Configuration and Fixtures
"""

import asyncio
import json
from typing import Any, Optional

import pytest

from loop_runner.core.broadcast import BroadcastHub, Subscriber
from loop_runner.core.controller import LoopController
from loop_runner.core.store import LoopConfig, LoopStore, ModelRef
from loop_runner.gateway.base import GatewayError, GatewayUnavailable, ModelInfo


class FakeGateway:
    """In-memory agent runtime."""

    def __init__(self):
        self.connect_error: Optional[Exception] = None
        self.session_failures: set[int] = set()  # 1-based create_session calls
        self.prompt_failures: set[int] = set()  # 1-based prompt calls
        self.parts: list[dict[str, Any]] = [{"type": "text", "text": "ok"}]
        self.models: list[ModelInfo] = []
        self.models_error: Optional[Exception] = None

        self.connected = False
        self.closed = False
        self.sessions: list[str] = []
        self.prompts: list[dict[str, Any]] = []
        self._session_calls = 0

    async def connect(self) -> None:
        await asyncio.sleep(0)
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    async def create_session(self) -> str:
        await asyncio.sleep(0)
        self._session_calls += 1
        if self._session_calls in self.session_failures:
            raise GatewayError("session refused")
        session_id = f"ses_{self._session_calls}"
        self.sessions.append(session_id)
        return session_id

    async def prompt(self, session_id, model, system, text):
        await asyncio.sleep(0)
        self.prompts.append({
            "session_id": session_id,
            "model": model,
            "system": system,
            "text": text,
        })
        if len(self.prompts) in self.prompt_failures:
            raise GatewayError("model overloaded")
        return list(self.parts)

    async def list_models(self):
        if self.models_error:
            raise self.models_error
        return list(self.models)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def unavailable_gateway() -> FakeGateway:
    gw = FakeGateway()
    gw.connect_error = GatewayUnavailable("opencode not found")
    return gw


@pytest.fixture
def store() -> LoopStore:
    """A store that paces without delay."""
    return LoopStore(LoopConfig(
        model=ModelRef(provider_id="anthropic", model_id="claude-sonnet-4-20250514"),
        system="You are a loop.",
        user="Do the task.",
        interval=0,
    ))


@pytest.fixture
def hub(store) -> BroadcastHub:
    return BroadcastHub(store.snapshot)


@pytest.fixture
def controller(store, hub, gateway) -> LoopController:
    return LoopController(store=store, hub=hub, gateway=gateway)


async def next_event(subscriber: Subscriber, timeout: float = 2.0) -> dict:
    message = await asyncio.wait_for(subscriber.get(), timeout=timeout)
    assert message is not None, "subscriber closed"
    return json.loads(message)


async def events_until(
    subscriber: Subscriber,
    event_type: str,
    timeout: float = 5.0,
    **match,
) -> list[dict]:
    """Collect events up to and including the first ``event_type`` matching ``match``."""
    events = []
    while True:
        event = await next_event(subscriber, timeout)
        events.append(event)
        if event["type"] == event_type and all(event.get(k) == v for k, v in match.items()):
            return events


def drain(subscriber: Subscriber) -> list[dict]:
    """Events already queued, without waiting."""
    events = []
    while not subscriber._queue.empty():
        message = subscriber._queue.get_nowait()
        if message is None:
            break
        events.append(json.loads(message))
    return events
