"""opencode runtime gateway.

Talks to the opencode HTTP server with httpx. Unless ``opencode_url`` is set,
the server is launched on first use as a child process and terminated on close.
"""

import asyncio
import logging
import re
from typing import Any, Optional

import httpx

from loop_runner.config import Settings, settings as default_settings
from loop_runner.core.store import ModelRef
from loop_runner.gateway.base import GatewayError, GatewayUnavailable, ModelInfo

logger = logging.getLogger(__name__)

_LISTENING_RE = re.compile(r"opencode server listening.*?on\s+(https?://\S+)")


class OpencodeServer:
    """A locally spawned ``opencode serve`` process."""

    def __init__(
        self,
        executable: str,
        hostname: str = "127.0.0.1",
        port: int = 4097,
        startup_timeout: float = 5.0,
    ):
        self.executable = executable
        self.hostname = hostname
        self.port = port
        self.startup_timeout = startup_timeout

        self.url: Optional[str] = None
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._drain_task: Optional[asyncio.Task] = None

    async def start(self) -> str:
        """Launch the server and return the URL it reports."""
        if self.url:
            return self.url

        cmd = [
            self.executable,
            "serve",
            f"--hostname={self.hostname}",
            f"--port={self.port}",
        ]
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError:
            raise GatewayUnavailable(
                f"opencode not found. Is '{self.executable}' installed?"
            )
        except OSError as e:
            raise GatewayUnavailable(f"Failed to launch opencode: {e}")

        try:
            self.url = await asyncio.wait_for(
                self._read_url(),
                timeout=self.startup_timeout,
            )
        except asyncio.TimeoutError:
            await self.stop()
            raise GatewayUnavailable(
                f"opencode did not start within {self.startup_timeout} seconds"
            )
        except GatewayUnavailable:
            await self.stop()
            raise

        # Keep reading so the runtime never blocks on a full pipe
        self._drain_task = asyncio.create_task(self._drain_output())
        return self.url

    async def _read_url(self) -> str:
        if self._proc is None or self._proc.stdout is None:
            raise GatewayUnavailable("opencode process has no output pipe")

        output = []
        while True:
            try:
                line = await self._proc.stdout.readline()
            except ValueError as e:
                raise GatewayUnavailable(f"Unreadable opencode output: {e}")
            if not line:
                raise GatewayUnavailable(
                    f"opencode exited before listening: {''.join(output).strip()}"
                )
            text = line.decode(errors="replace")
            output.append(text)
            match = _LISTENING_RE.search(text)
            if match:
                return match.group(1)

    async def _drain_output(self) -> None:
        """Log runtime output until the process closes its pipe."""
        if self._proc is None or self._proc.stdout is None:
            return
        stdout = self._proc.stdout
        while True:
            try:
                line = await stdout.readline()
            except ValueError:
                # Over-long line; readline has already discarded it
                continue
            if not line:
                return
            logger.debug(f"opencode: {line.decode(errors='replace').rstrip()}")

    async def stop(self) -> None:
        """Terminate the server process if it is still running."""
        proc, self._proc = self._proc, None
        self.url = None
        drain, self._drain_task = self._drain_task, None
        if drain is not None:
            drain.cancel()
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=5)
        except asyncio.TimeoutError:
            proc.kill()


class OpencodeGateway:
    """Agent gateway backed by the opencode HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        server: Optional[OpencodeServer] = None,
        timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the gateway.

        Args:
            base_url: URL of an already-running runtime
            server: Launcher used when ``base_url`` is not given
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url
        self.server = server
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._connect_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings = default_settings) -> "OpencodeGateway":
        server = None
        if not settings.opencode_url:
            server = OpencodeServer(
                executable=settings.opencode_executable,
                hostname=settings.opencode_hostname,
                port=settings.opencode_sdk_port,
                startup_timeout=settings.opencode_startup_timeout,
            )
        return cls(
            base_url=settings.opencode_url,
            server=server,
            timeout=settings.agent_timeout_seconds,
        )

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        async with self._connect_lock:
            if self._client is not None:
                return

            base_url = self.base_url
            if base_url is None:
                if self.server is None:
                    raise GatewayUnavailable("No opencode URL or server configured")
                logger.info(f"Starting opencode server with executable: {self.server.executable}")
                base_url = await self.server.start()
                logger.info(f"opencode server started at {base_url}")
            else:
                logger.info(f"Using opencode server at {base_url}")

            self._client = httpx.AsyncClient(
                base_url=base_url,
                timeout=self.timeout,
                transport=self._transport,
            )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        if self._client is None:
            await self.connect()
        if self._client is None:
            raise GatewayUnavailable("opencode client is not connected")

        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise GatewayError(
                f"{method} {path} failed with {e.response.status_code}: {e.response.text}"
            )
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {path} failed: {e}")
        except ValueError as e:
            raise GatewayError(f"{method} {path} returned invalid JSON: {e}")

    async def create_session(self) -> str:
        data = await self._request("POST", "/session", json={})
        if not isinstance(data, dict) or not data.get("id"):
            raise GatewayError("Failed to create session")
        return data["id"]

    async def prompt(
        self,
        session_id: str,
        model: ModelRef,
        system: str,
        text: str,
    ) -> list[dict[str, Any]]:
        data = await self._request(
            "POST",
            f"/session/{session_id}/message",
            json={
                "model": {
                    "providerID": model.provider_id,
                    "modelID": model.model_id,
                },
                "system": system,
                "parts": [{"type": "text", "text": text}],
            },
        )
        if not isinstance(data, dict):
            raise GatewayError("Empty response from agent")
        return data.get("parts") or []

    async def list_models(self) -> list[ModelInfo]:
        data = await self._request("GET", "/provider")
        if not isinstance(data, dict) or not isinstance(data.get("all", []), list):
            raise GatewayError("Unexpected provider list from opencode")

        models = []
        for provider in data.get("all", []):
            # Entries the runtime reports without an id or model table are skipped
            if not isinstance(provider, dict) or not provider.get("id"):
                continue
            provider_models = provider.get("models")
            if not isinstance(provider_models, dict):
                continue
            for model_id, model in provider_models.items():
                name = model.get("name") if isinstance(model, dict) else None
                models.append(ModelInfo(
                    provider_id=provider["id"],
                    model_id=model_id,
                    name=name or model_id,
                ))
        return models

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self.server is not None:
            await self.server.stop()
