"""Loop controller - drives the agent through repeated prompt cycles.

Each iteration:
1. Checks the iteration ceiling
2. Runs the monitor command (if configured)
3. Opens a fresh agent session
4. Builds the prompt and sends it to the agent
5. Records the response and clears working memory
6. Sleeps for the configured interval (interruptible by stop)

Every transition is published to the broadcast hub.
"""

import asyncio
import logging
from typing import Optional

from loop_runner.core.broadcast import BroadcastHub
from loop_runner.core.monitor import MonitorRunner
from loop_runner.core.prompt import build_prompt, extract_response
from loop_runner.core.store import HistoryEntry, LoopStore
from loop_runner.gateway.base import AgentGateway, GatewayError, ModelInfo

logger = logging.getLogger(__name__)


class LoopController:
    """Owns the single loop task and its cancellation scope."""

    def __init__(
        self,
        store: LoopStore,
        hub: BroadcastHub,
        gateway: AgentGateway,
        monitor: Optional[MonitorRunner] = None,
    ):
        self.store = store
        self.hub = hub
        self.gateway = gateway
        self.monitor = monitor or MonitorRunner()

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_active(self) -> bool:
        """True while a run is starting up or running."""
        return self._task is not None and not self._task.done()

    @property
    def running(self) -> bool:
        return self.store.state.running

    # =========================================================================
    # Control
    # =========================================================================

    def start(self) -> bool:
        """Start the loop in the background.

        Returns False without doing anything if a run is already active.
        """
        if self.is_active or self.store.state.running:
            return False

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_event))
        return True

    def stop(self) -> None:
        """Request the loop to stop at its next checkpoint."""
        self.store.state.running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def wait(self) -> None:
        """Wait for the current run, if any, to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the loop and release the gateway."""
        self.stop()
        task = self._task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Loop did not stop in time, cancelling")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        await self.gateway.close()

    async def list_models(self) -> list[ModelInfo]:
        """Models offered by the runtime; empty on any failure."""
        try:
            await self.gateway.connect()
            return await self.gateway.list_models()
        except GatewayError as e:
            logger.warning(f"Failed to list models: {e}")
            return []
        except Exception as e:
            logger.error(f"Unexpected error listing models: {e}", exc_info=True)
            return []

    # =========================================================================
    # Loop
    # =========================================================================

    async def _run(self, stop_event: asyncio.Event) -> None:
        try:
            await self.gateway.connect()
        except GatewayError as e:
            logger.error(f"Cannot start loop: {e}")
            self.hub.publish({"type": "error", "message": str(e)})
            return
        except Exception as e:
            logger.error(f"Cannot start loop: {e}", exc_info=True)
            self.hub.publish({"type": "error", "message": f"Failed to connect to agent runtime: {e}"})
            return

        if stop_event.is_set():
            logger.info("Loop stopped before it started")
            return

        state = self.store.state
        state.running = True
        state.iteration = 0
        self._publish_state()
        logger.info("Loop started")

        try:
            while state.running and not stop_event.is_set():
                max_iterations = self.store.config.max_iterations
                if max_iterations > 0 and state.iteration >= max_iterations:
                    logger.info(f"Reached maximum of {max_iterations} iterations")
                    break

                state.iteration += 1
                self.hub.publish({"type": "iteration", "iteration": state.iteration})

                try:
                    await self._iterate()
                except Exception as e:
                    logger.error(f"Error in iteration {state.iteration}: {e}", exc_info=True)
                    self.hub.publish({
                        "type": "error",
                        "message": str(e),
                        "iteration": state.iteration,
                    })

                if state.running:
                    await self._sleep(stop_event)
        finally:
            state.running = False
            self.hub.publish({"type": "stopped"})
            logger.info(f"Loop stopped after {state.iteration} iterations")

    async def _iterate(self) -> None:
        """Run one iteration body (everything but the pacing sleep)."""
        state = self.store.state
        iteration = state.iteration

        await self._run_monitor()

        try:
            state.session_id = await self.gateway.create_session()
        except GatewayError as e:
            logger.warning(f"Iteration {iteration}: failed to create session: {e}")
            self.hub.publish({
                "type": "error",
                "message": f"Failed to create session: {e}",
                "iteration": iteration,
            })
            self._finish_iteration()
            return

        prompt = build_prompt(self.store.config, state)
        self.hub.publish({"type": "prompt", "prompt": prompt, "iteration": iteration})

        config = self.store.config
        try:
            parts = await self.gateway.prompt(
                state.session_id,
                config.model,
                config.system,
                prompt,
            )
        except GatewayError as e:
            logger.warning(f"Iteration {iteration}: prompt failed: {e}")
            self.hub.publish({"type": "error", "message": str(e), "iteration": iteration})
        else:
            response = extract_response(parts)
            self.store.record(HistoryEntry(
                iteration=iteration,
                prompt=prompt,
                response=response,
            ))
            self.hub.publish({"type": "response", "response": response, "iteration": iteration})
        finally:
            self._finish_iteration()

    async def _run_monitor(self) -> None:
        monitor = self.store.config.monitor
        if not monitor or not monitor.command:
            return

        output = await self.monitor.run(monitor.command)
        self.store.state.monitor_output = output
        self.hub.publish({"type": "monitor", "output": output})

    def _finish_iteration(self) -> None:
        self.store.clear_working()
        self._publish_state()

    async def _sleep(self, stop_event: asyncio.Event) -> None:
        """Pace until the next iteration or until stop is requested."""
        seconds = max(self.store.config.interval, 0) / 1000
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _publish_state(self) -> None:
        self.hub.publish({"type": "state", "state": self.store.state.to_dict()})
