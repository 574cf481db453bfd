"""
JSON-RPC tool transport over a subprocess's stdin/stdout.

One JSON object per line in both directions. The process is launched lazily
from an ``mcp_servers`` entry (``{command, args, env}``); ``env`` is merged over
the current process environment. Responses are matched to pending requests by
id, so the server may answer out of order.
A server that exits, or sends a line longer than ``read_limit``, is dropped;
the next request launches a fresh process.
"""
import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional

from chorus_service.core.errors import TransportError
from chorus_service.tools.transports.jsonrpc import JsonRpcToolTransport

logger = logging.getLogger(__name__)

# Largest single response line accepted from a tool server
DEFAULT_READ_LIMIT = 16 * 1024 * 1024


class StdioToolTransport(JsonRpcToolTransport):
    def __init__(
        self,
        servers: Optional[Dict[str, Dict[str, Any]]] = None,
        server: Optional[str] = None,
        timeout: Optional[float] = 10.0,
        read_limit: int = DEFAULT_READ_LIMIT,
    ):
        super().__init__()
        servers = servers or {}
        if not servers:
            raise ValueError("StdioToolTransport needs at least one entry in mcp_servers")
        self.server_name = server or next(iter(servers))
        if self.server_name not in servers:
            raise ValueError(f"Unknown tool server: {self.server_name}")
        cfg = servers[self.server_name] or {}
        if not cfg.get("command"):
            raise ValueError(f"Tool server {self.server_name} has no command")
        self.command: str = cfg["command"]
        self.args = [str(a) for a in cfg.get("args") or []]
        self.env = {**os.environ, **{k: str(v) for k, v in (cfg.get("env") or {}).items()}}
        self.timeout = timeout
        self.read_limit = read_limit

        self._proc: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[Any, asyncio.Future] = {}
        self._start_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    async def _ensure_started(self) -> None:
        async with self._start_lock:
            if self.running:
                return
            try:
                self._proc = await asyncio.create_subprocess_exec(
                    self.command,
                    *self.args,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    env=self.env,
                    limit=self.read_limit,
                )
            except OSError as e:
                raise TransportError(f"Failed to launch tool server {self.server_name}: {e}", cause=e) from e
            logger.info("Launched tool server %s (pid %s)", self.server_name, self._proc.pid)
            self._reader = asyncio.create_task(self._read_loop(self._proc))

    async def _read_loop(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdout is not None
        reason = "exited"
        try:
            while True:
                try:
                    line = await proc.stdout.readline()
                except ValueError as e:
                    # Over the reader limit; the line framing cannot be recovered
                    reason = f"sent a response longer than {self.read_limit} bytes"
                    logger.error("Tool server %s %s: %s", self.server_name, reason, e)
                    break
                if not line:
                    logger.warning("Tool server %s closed its output", self.server_name)
                    break
                self._dispatch(line)
        finally:
            self._retire(proc, reason)

    def _dispatch(self, line: bytes) -> None:
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON line from %s: %r", self.server_name, line[:200])
            return
        fut = self._pending.pop(message.get("id"), None) if isinstance(message, dict) else None
        if fut is None:
            logger.debug("Unmatched message from %s: %s", self.server_name, str(message)[:200])
            return
        if not fut.done():
            fut.set_result(message)

    def _retire(self, proc: asyncio.subprocess.Process, reason: str) -> None:
        """Forget a dead or unusable process so the next request launches a new one."""
        if self._proc is not proc and self._proc is not None:
            return
        self._proc = None
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        self._fail_pending(TransportError(f"Tool server {self.server_name} {reason}"))

    def _fail_pending(self, error: Exception) -> None:
        pending, self._pending = self._pending, {}
        for fut in pending.values():
            if not fut.done():
                fut.set_exception(error)

    async def _send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        await self._ensure_started()
        assert self._proc is not None and self._proc.stdin is not None

        fut = asyncio.get_running_loop().create_future()
        self._pending[request["id"]] = fut
        try:
            self._proc.stdin.write((json.dumps(request) + "\n").encode("utf-8"))
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            self._pending.pop(request["id"], None)
            raise TransportError(f"Tool server {self.server_name} is not accepting input", cause=e) from e

        try:
            return await asyncio.wait_for(fut, self.timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Tool server {self.server_name} did not answer {request['method']}", cause=e) from e
        finally:
            self._pending.pop(request["id"], None)

    async def close(self) -> None:
        proc, self._proc = self._proc, None
        if proc is not None and proc.returncode is None:
            if proc.stdin is not None:
                proc.stdin.close()
            try:
                await asyncio.wait_for(proc.wait(), 2.0)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None
        self._fail_pending(TransportError("Tool transport closed"))
