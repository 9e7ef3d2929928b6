"""Core modules for Loop Runner.

Contains the fundamental building blocks:
- store: In-memory configuration and run state
- broadcast: Fan-out of loop events to observers
- monitor: Shell command sampling before each iteration
- prompt: Prompt assembly
- controller: The loop itself
"""

from loop_runner.core.store import (
    LoopStore,
    LoopConfig,
    LoopState,
    ModelRef,
    MonitorConfig,
    HistoryEntry,
    HISTORY_LIMIT,
)
from loop_runner.core.broadcast import (
    BroadcastHub,
    Subscriber,
    sse_stream,
)
from loop_runner.core.monitor import MonitorRunner, MonitorResult
from loop_runner.core.prompt import build_prompt, extract_response
from loop_runner.core.controller import LoopController

__all__ = [
    # Store
    "LoopStore",
    "LoopConfig",
    "LoopState",
    "ModelRef",
    "MonitorConfig",
    "HistoryEntry",
    "HISTORY_LIMIT",
    # Broadcast
    "BroadcastHub",
    "Subscriber",
    "sse_stream",
    # Monitor
    "MonitorRunner",
    "MonitorResult",
    # Prompt
    "build_prompt",
    "extract_response",
    # Controller
    "LoopController",
]
