"""API routes for Loop Runner.

Includes:
- loop: loop control, memory updates and the event stream
"""

from loop_runner.api.loop import router as loop_router

__all__ = ["loop_router"]
