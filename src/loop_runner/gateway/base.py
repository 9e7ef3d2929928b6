"""Agent session gateway contract.

The loop only needs to open a session, send one prompt to it and, for the UI,
list the models the runtime offers. Everything else about the runtime is
opaque.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from loop_runner.core.store import ModelRef


class GatewayError(Exception):
    """The agent runtime rejected or failed a request."""


class GatewayUnavailable(GatewayError):
    """The agent runtime could not be launched or reached."""


@dataclass
class ModelInfo:
    """A model offered by the runtime."""

    provider_id: str
    model_id: str
    name: str


class AgentGateway(Protocol):
    """Protocol for agent runtime implementations."""

    async def connect(self) -> None:
        """Make the runtime reachable. Idempotent."""
        ...

    async def create_session(self) -> str:
        """Open a new session and return its id."""
        ...

    async def prompt(
        self,
        session_id: str,
        model: "ModelRef",
        system: str,
        text: str,
    ) -> list[dict[str, Any]]:
        """Send a prompt and return the ordered response parts."""
        ...

    async def list_models(self) -> list[ModelInfo]:
        """List models across all providers."""
        ...

    async def close(self) -> None:
        """Release the connection and any process launched by ``connect``."""
        ...
