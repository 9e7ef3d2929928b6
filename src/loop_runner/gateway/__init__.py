"""Agent runtime gateway.

The loop talks to the agent runtime only through the AgentGateway protocol.
OpencodeGateway is the production implementation.
"""

from loop_runner.gateway.base import (
    AgentGateway,
    GatewayError,
    GatewayUnavailable,
    ModelInfo,
)
from loop_runner.gateway.opencode import OpencodeGateway, OpencodeServer

__all__ = [
    "AgentGateway",
    "GatewayError",
    "GatewayUnavailable",
    "ModelInfo",
    "OpencodeGateway",
    "OpencodeServer",
]
