"""Monitor command runner.

Runs a shell command to completion before each iteration and turns its output
into prompt context. Failures never propagate; they become the output text.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class MonitorResult:
    """Raw result of a monitor command."""

    stdout: str
    stderr: str
    returncode: Optional[int] = None

    @property
    def output(self) -> str:
        """Stdout, followed by a labelled stderr block when stderr is non-empty."""
        if self.stderr:
            return f"{self.stdout}\n[stderr]\n{self.stderr}"
        return self.stdout


class MonitorRunner:
    """Runs monitor commands through the system shell."""

    def __init__(self, cwd: Optional[Path] = None):
        self.cwd = cwd

    async def execute(self, command: str) -> MonitorResult:
        """Run ``command`` and capture stdout and stderr separately.

        No timeout is applied and the exit status does not affect the output.
        """
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=self.cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()

        return MonitorResult(
            stdout=stdout.decode(errors="replace") if stdout else "",
            stderr=stderr.decode(errors="replace") if stderr else "",
            returncode=proc.returncode,
        )

    async def run(self, command: str) -> str:
        """Run ``command`` and return the combined output or an error message."""
        try:
            result = await self.execute(command)
        except Exception as e:
            logger.warning(f"Monitor command failed: {e}")
            return f"Error running monitor: {e}"

        return result.output
