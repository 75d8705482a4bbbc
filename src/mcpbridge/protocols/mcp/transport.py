"""MCP client transports — stdio, TCP and streaming-HTTP communication layers.

Each transport satisfies the :class:`MCPTransport` protocol, providing
``connect``, ``send``, ``receive``, and ``close`` methods, and pairs with the
server binding of the same name.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import shlex
from collections import deque
from typing import Any, Protocol, runtime_checkable

import httpx

from mcpbridge.protocols.errors import ConnectionError

_STREAM_LIMIT = 16 * 1024 * 1024


@runtime_checkable
class MCPTransport(Protocol):
    """Abstract transport for MCP JSON-RPC communication."""

    async def connect(self) -> None: ...
    async def send(self, data: dict[str, Any]) -> None: ...
    async def receive(self) -> dict[str, Any]: ...
    async def close(self) -> None: ...


class StdioTransport:
    """Communicates with an MCP server via subprocess stdin/stdout.

    Sends and receives newline-delimited JSON.  The server's stderr (its log
    stream) is inherited by default.
    """

    def __init__(
        self,
        command: str,
        env: dict[str, str] | None = None,
        *,
        stderr: int | None = None,
    ) -> None:
        self._command = command
        self._env = env
        self._stderr = stderr
        self._process: asyncio.subprocess.Process | None = None

    async def connect(self) -> None:
        """Launch the subprocess."""
        parts = shlex.split(self._command)
        self._process = await asyncio.create_subprocess_exec(
            *parts,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=self._stderr,
            env=self._env,
            limit=_STREAM_LIMIT,
        )

    async def send(self, data: dict[str, Any]) -> None:
        """Write a JSON line to stdin."""
        if self._process is None or self._process.stdin is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        line = json.dumps(data) + "\n"
        self._process.stdin.write(line.encode())
        await self._process.stdin.drain()

    async def receive(self) -> dict[str, Any]:
        """Read a JSON line from stdout."""
        if self._process is None or self._process.stdout is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        line = await self._process.stdout.readline()
        if not line:
            msg = "Transport closed"
            raise RuntimeError(msg)
        return json.loads(line)  # type: ignore[no-any-return]

    async def close(self) -> None:
        """Close stdin and terminate the subprocess."""
        if self._process is not None:
            if self._process.stdin:
                self._process.stdin.close()
            with contextlib.suppress(ProcessLookupError):
                self._process.terminate()
            await self._process.wait()
            self._process = None


class TcpTransport:
    """Communicates with an MCP server over a persistent TCP connection.

    Sends and receives newline-delimited JSON.
    """

    def __init__(self, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    async def connect(self) -> None:
        """Open the TCP connection."""
        self._reader, self._writer = await asyncio.open_connection(
            self._host, self._port, limit=_STREAM_LIMIT
        )

    async def send(self, data: dict[str, Any]) -> None:
        if self._writer is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        self._writer.write((json.dumps(data) + "\n").encode())
        await self._writer.drain()

    async def receive(self) -> dict[str, Any]:
        if self._reader is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        line = await self._reader.readline()
        if not line:
            msg = "Transport closed"
            raise RuntimeError(msg)
        return json.loads(line)  # type: ignore[no-any-return]

    async def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            with contextlib.suppress(OSError):
                await self._writer.wait_closed()
            self._writer = None
            self._reader = None


class StreamableHttpTransport:
    """Communicates with an MCP server by POSTing each message to its endpoint.

    Replies arrive in the HTTP response body and are queued until
    :meth:`receive` is called.  Notifications are answered with
    ``202 Accepted`` and queue nothing.
    """

    def __init__(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None
        self._pending: deque[dict[str, Any]] = deque()

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(
            headers={"Accept": "application/json", **self._headers},
            timeout=self._timeout,
            transport=self._http_transport,
        )

    async def send(self, data: dict[str, Any]) -> None:
        if self._client is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        try:
            response = await self._client.post(self._url, json=data)
        except httpx.HTTPError as exc:
            raise ConnectionError(f"POST {self._url} failed: {exc}") from exc
        if response.status_code == 202 or not response.content:
            return
        try:
            body = response.json()
        except ValueError as exc:
            raise ConnectionError(
                f"POST {self._url} returned HTTP {response.status_code} with a non-JSON body"
            ) from exc
        if isinstance(body, list):
            self._pending.extend(body)
        else:
            self._pending.append(body)

    async def receive(self) -> dict[str, Any]:
        if self._client is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        if not self._pending:
            msg = "No pending response"
            raise RuntimeError(msg)
        return self._pending.popleft()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._pending.clear()
