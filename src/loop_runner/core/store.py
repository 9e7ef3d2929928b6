"""In-memory configuration and run state for the loop.

One ``LoopStore`` is created per process and shared by reference between the
loop controller, the prompt builder and the HTTP layer. There is no locking:
writes from requests are last-writer-wins and are picked up by the loop at the
next iteration boundary.
"""

import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from pydantic import BaseModel

from loop_runner.config import Settings, settings as default_settings

HISTORY_LIMIT = 100


# =============================================================================
# Configuration
# =============================================================================


class ModelRef(BaseModel):
    """Provider/model pair passed through to the agent runtime."""

    provider_id: str
    model_id: str


class MonitorConfig(BaseModel):
    """Shell command sampled before every iteration."""

    command: str


class LoopConfig(BaseModel):
    """Mutable loop configuration."""

    model: ModelRef
    system: str = ""
    user: str = ""  # fixed per-iteration task
    working: str = ""  # cleared after every iteration
    persistent: str = ""
    monitor: Optional[MonitorConfig] = None
    interval: int = 5000  # milliseconds
    max_iterations: int = 0  # 0 = unbounded
    auto_approve: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoopConfig":
        """Build the process-start defaults."""
        return cls(
            model=ModelRef(
                provider_id=settings.default_provider_id,
                model_id=settings.default_model_id,
            ),
            system=settings.default_system,
            user=settings.default_task,
            interval=settings.default_interval_ms,
        )


# =============================================================================
# Run state
# =============================================================================


@dataclass(frozen=True)
class HistoryEntry:
    """A completed iteration."""

    iteration: int
    prompt: str
    response: str
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))


@dataclass
class LoopState:
    """Run-time state owned by the loop controller."""

    running: bool = False
    iteration: int = 0
    session_id: Optional[str] = None
    last_output: str = ""
    monitor_output: str = ""
    history: deque = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))

    def to_dict(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "iteration": self.iteration,
            "session_id": self.session_id,
            "last_output": self.last_output,
            "monitor_output": self.monitor_output,
            "history": [asdict(entry) for entry in self.history],
        }


class LoopStore:
    """Owned handle on the configuration and run state."""

    def __init__(self, config: Optional[LoopConfig] = None):
        self.config = config or LoopConfig.from_settings(default_settings)
        self.state = LoopState()

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready view of state and config."""
        return {
            "state": self.state.to_dict(),
            "config": self.config_dict(),
        }

    def config_dict(self) -> dict[str, Any]:
        return self.config.model_dump(mode="json")

    def history(self) -> list[dict[str, Any]]:
        """History records, oldest first."""
        return [asdict(entry) for entry in self.state.history]

    def update_config(self, changes: dict[str, Any]) -> LoopConfig:
        """Shallow-merge ``changes`` into the configuration.

        Nested values (``model``, ``monitor``) are replaced, not merged.
        """
        merged = {**self.config.model_dump(), **changes}
        self.config = LoopConfig.model_validate(merged)
        return self.config

    def set_working(self, text: str) -> None:
        self.config = self.config.model_copy(update={"working": text})

    def set_persistent(self, text: str) -> None:
        self.config = self.config.model_copy(update={"persistent": text})

    def clear_working(self) -> None:
        self.set_working("")

    def record(self, entry: HistoryEntry) -> None:
        """Append a completed iteration; the oldest entry is evicted at the cap."""
        self.state.history.append(entry)
        self.state.last_output = entry.response
