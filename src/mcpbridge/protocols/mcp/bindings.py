"""Server-side transport bindings — stdio, TCP and streaming HTTP.

Each binding satisfies the :class:`TransportBinding` protocol.  They differ
only in how frames reach the server; every decoded message is handed to
:meth:`MCPServer.handle_payload`.

Stdio and TCP carry newline-delimited JSON and share :class:`StreamSession`.
The HTTP binding carries one JSON-RPC message (or batch) per ``POST``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sys
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from mcpbridge.protocols.errors import PARSE_ERROR
from mcpbridge.utils.telemetry import ATTR_TRANSPORT, get_tracer

if TYPE_CHECKING:
    from mcpbridge.protocols.mcp.server import MCPServer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

BindingKind = Literal["stdio", "tcp", "http"]

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8005
DEFAULT_HTTP_PATH = "/mcp"

# Documents sent to create_index easily exceed asyncio's 64 KiB line default.
STREAM_LIMIT = 16 * 1024 * 1024

_DISCONNECT_POLL = 0.5


@runtime_checkable
class TransportBinding(Protocol):
    """Carries protocol frames between clients and an :class:`MCPServer`."""

    kind: BindingKind

    async def serve(self) -> None: ...
    async def close(self) -> None: ...


def parse_error_response(detail: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": None,
        "error": {"code": PARSE_ERROR, "message": f"Parse error: {detail}"},
    }


# ---------------------------------------------------------------------------
# Newline-delimited JSON session (stdio, TCP)
# ---------------------------------------------------------------------------


class StreamSession:
    """Serves one newline-delimited JSON connection.

    Every request runs in its own task, so a slow tool call does not hold up
    the requests behind it; replies are paired with requests by ``id`` only.
    When the peer closes its side, the session's in-flight calls are cancelled.
    """

    def __init__(
        self,
        server: MCPServer,
        reader: asyncio.StreamReader,
        writer: Any,
        *,
        peer: str = "",
    ) -> None:
        self._server = server
        self._reader = reader
        self._writer = writer
        self._peer = peer
        self._write_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        logger.debug("Session started: %s", self._peer)
        try:
            while True:
                try:
                    line = await self._reader.readline()
                except (ConnectionError, asyncio.LimitOverrunError, ValueError) as exc:
                    logger.warning("Session %s read failed: %s", self._peer, exc)
                    break
                if not line:
                    break
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                    await self._send(parse_error_response(str(exc)))
                    continue
                task = asyncio.create_task(self._handle(payload))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        finally:
            await self._cancel_in_flight()
            logger.debug("Session closed: %s", self._peer)

    async def _handle(self, payload: Any) -> None:
        reply = await self._server.handle_payload(payload)
        if reply is not None:
            await self._send(reply)

    async def _send(self, message: Any) -> None:
        data = (json.dumps(message) + "\n").encode()
        async with self._write_lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (ConnectionError, RuntimeError) as exc:
                logger.warning("Session %s write failed: %s", self._peer, exc)

    async def _cancel_in_flight(self) -> None:
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            logger.info("Cancelled %d in-flight call(s) for %s", len(pending), self._peer)
            await asyncio.gather(*pending, return_exceptions=True)


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


class StdioBinding:
    """Serves a single client over this process's stdin/stdout.

    The process lifetime is the connection lifetime: ``serve`` returns when
    stdin reaches EOF.
    """

    kind: BindingKind = "stdio"

    def __init__(self, server: MCPServer, *, stdin: Any = None, stdout: Any = None) -> None:
        self._server = server
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._task: asyncio.Task[None] | None = None

    async def serve(self) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=STREAM_LIMIT)
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), self._stdin)
        transport, protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, self._stdout
        )
        writer = asyncio.StreamWriter(transport, protocol, reader, loop)
        logger.info("%s MCP server listening on stdio", self._server.name)
        with _tracer.start_as_current_span("mcpbridge.binding.serve") as span:
            span.set_attribute(ATTR_TRANSPORT, self.kind)
            self._task = asyncio.current_task()
            await StreamSession(self._server, reader, writer, peer="stdio").run()

    async def close(self) -> None:
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()


class TcpBinding:
    """Persistent streaming binding over TCP.

    ``asyncio.start_server`` runs the accept loop and starts one task per
    accepted connection; an error inside one connection is logged and ends
    only that connection.
    """

    kind: BindingKind = "tcp"

    def __init__(
        self, server: MCPServer, *, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT
    ) -> None:
        self._server = server
        self.host = host
        self.port = port
        self._listener: asyncio.Server | None = None
        self._connections: set[asyncio.Task[Any]] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def start(self) -> tuple[str, int]:
        """Bind the listening socket and return the bound ``(host, port)``."""
        self._listener = await asyncio.start_server(
            self._handle_connection, self.host, self.port, limit=STREAM_LIMIT
        )
        host, port = self._listener.sockets[0].getsockname()[:2]
        self.port = port
        logger.info("%s MCP server is listening on %s:%s", self._server.name, host, port)
        return host, port

    async def serve(self) -> None:
        if self._listener is None:
            await self.start()
        assert self._listener is not None
        with _tracer.start_as_current_span("mcpbridge.binding.serve") as span:
            span.set_attribute(ATTR_TRANSPORT, self.kind)
            async with self._listener:
                await self._listener.serve_forever()

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.close()
        for task in list(self._connections):
            task.cancel()
        if self._connections:
            await asyncio.gather(*self._connections, return_exceptions=True)
        if self._listener is not None:
            await self._listener.wait_closed()
            self._listener = None

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peername = writer.get_extra_info("peername")
        peer = f"{peername[0]}:{peername[1]}" if peername else "tcp"
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            await StreamSession(self._server, reader, writer, peer=peer).run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Connection %s failed", peer)
        finally:
            if task is not None:
                self._connections.discard(task)
            writer.close()
            with contextlib.suppress(ConnectionError, OSError):
                await writer.wait_closed()


def create_http_app(server: MCPServer, *, path: str = DEFAULT_HTTP_PATH) -> FastAPI:
    """Build the FastAPI application for the streaming-HTTP binding."""
    app = FastAPI(title=f"{server.name} MCP server", version=server.version)

    @app.post(path)
    async def mcp_endpoint(request: Request) -> Response:
        body = await request.body()
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return JSONResponse(parse_error_response(str(exc)), status_code=400)

        reply = await _run_until_disconnect(request, server.handle_payload(payload))
        if reply is None:
            return Response(status_code=202)
        return JSONResponse(reply)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "server": server.name, "tools": len(server.registry)}

    return app


async def _run_until_disconnect(request: Request, coro: Any) -> Any:
    """Await *coro*, cancelling it if the HTTP client goes away first."""
    task = asyncio.ensure_future(coro)
    while True:
        done, _ = await asyncio.wait({task}, timeout=_DISCONNECT_POLL)
        if done:
            return task.result()
        if await request.is_disconnected():
            logger.info("HTTP client disconnected; cancelling in-flight call")
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            return None


class StreamableHttpBinding:
    """Streaming-HTTP binding: each tool call is one HTTP exchange, served by uvicorn."""

    kind: BindingKind = "http"

    def __init__(
        self,
        server: MCPServer,
        *,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        path: str = DEFAULT_HTTP_PATH,
        log_level: str = "warning",
    ) -> None:
        self._server = server
        self.host = host
        self.port = port
        self.path = path
        self.app = create_http_app(server, path=path)
        self._log_level = log_level
        self._uvicorn: Any = None

    async def serve(self) -> None:
        import uvicorn

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_config=None,
            log_level=self._log_level,
        )
        self._uvicorn = uvicorn.Server(config)
        logger.info(
            "%s MCP server is listening on http://%s:%s%s",
            self._server.name,
            self.host,
            self.port,
            self.path,
        )
        with _tracer.start_as_current_span("mcpbridge.binding.serve") as span:
            span.set_attribute(ATTR_TRANSPORT, self.kind)
            await self._uvicorn.serve()

    async def close(self) -> None:
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True


def create_binding(
    kind: BindingKind,
    server: MCPServer,
    *,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    path: str = DEFAULT_HTTP_PATH,
) -> TransportBinding:
    """Build the binding selected by configuration."""
    if kind == "stdio":
        return StdioBinding(server)
    if kind == "tcp":
        return TcpBinding(server, host=host, port=port)
    if kind == "http":
        return StreamableHttpBinding(server, host=host, port=port, path=path)
    msg = f"Unknown transport binding: {kind}"
    raise ValueError(msg)
