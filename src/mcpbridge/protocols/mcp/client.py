"""MCPClient — connects to an MCP server, lists and invokes tools.

Implements the ``initialize`` handshake, tool discovery (``tools/list``) and
execution (``tools/call``) over an :class:`MCPTransport`, plus the typed
invocation helper :meth:`MCPClient.invoke`.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, TypeVar, cast

from pydantic import BaseModel, ValidationError

from mcpbridge import __version__
from mcpbridge.core.schema import dump_arguments
from mcpbridge.protocols.errors import (
    ConnectionError,
    ProtocolEnvelopeEmptyError,
    ResponseDecodeError,
    ToolExecutionError,
)
from mcpbridge.protocols.mcp.models import (
    PROTOCOL_VERSION,
    CallToolResult,
    JsonContent,
    JsonRpcRequest,
    JsonRpcResponse,
    ToolDescriptor,
)
from mcpbridge.protocols.mcp.transport import (
    MCPTransport,
    StdioTransport,
    StreamableHttpTransport,
    TcpTransport,
)

if TYPE_CHECKING:
    from mcpbridge.core.settings import ServerRef

ResponseT = TypeVar("ResponseT", bound=BaseModel)

# Server-initiated messages skipped while waiting for a reply.
_MAX_SKIPPED_MESSAGES = 100


class MCPClient:
    """Async context manager that connects to an MCP server.

    Usage::

        ref = ServerRef(transport="tcp", host="127.0.0.1", port=8005)
        async with MCPClient(ref) as client:
            tools = await client.list_tools()
            hits = await client.invoke(
                "search_documents",
                SearchDocumentsRequest(index_name="mcp-test", query="Gaianet", limit=2),
                SearchDocumentsResponse,
            )
    """

    def __init__(self, server_ref: ServerRef, *, client_name: str = "mcpbridge") -> None:
        self._ref = server_ref
        self._client_name = client_name
        self._transport: MCPTransport | None = None
        self._tools: dict[str, ToolDescriptor] = {}
        self._server_info: dict[str, Any] = {}
        self._next_id = 1

    async def __aenter__(self) -> MCPClient:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    @property
    def server_info(self) -> dict[str, Any]:
        return dict(self._server_info)

    async def connect(self) -> None:
        """Create the transport, connect, and perform the initialize handshake."""
        self._transport = self._create_transport()
        try:
            await self._transport.connect()
        except Exception as exc:
            raise ConnectionError(str(exc)) from exc
        await self._handshake()

    async def close(self) -> None:
        """Close the underlying transport."""
        if self._transport is not None:
            await self._transport.close()
            self._transport = None

    async def list_tools(self) -> list[ToolDescriptor]:
        """Send ``tools/list`` and return the server's tool descriptors."""
        response = await self._send_request("tools/list")
        if response.error is not None:
            raise ToolExecutionError("tools/list", response.error.message, response.error.code)
        raw_tools: list[dict[str, Any]] = (
            cast("list[dict[str, Any]]", response.result.get("tools", []))
            if response.result
            else []
        )
        self._tools = {}
        for raw in raw_tools:
            descriptor = ToolDescriptor.model_validate(raw)
            self._tools[descriptor.name] = descriptor
        return list(self._tools.values())

    async def call_tool(
        self, name: str, arguments: BaseModel | dict[str, Any] | None = None
    ) -> CallToolResult:
        """Send ``tools/call`` and return the success envelope.

        Raises:
            ToolExecutionError: When the server answers with an error envelope.
        """
        response = await self._send_request(
            "tools/call",
            params={"name": name, "arguments": dump_arguments(arguments)},
        )
        if response.error is not None:
            raise ToolExecutionError(name, response.error.message, response.error.code)
        result = CallToolResult.model_validate(response.result or {})
        if result.is_error:
            raise ToolExecutionError(name, _first_text(result))
        return result

    async def invoke(
        self,
        name: str,
        arguments: BaseModel | dict[str, Any] | None,
        response_model: type[ResponseT],
    ) -> ResponseT:
        """Call *name* and convert the primary content item into *response_model*."""
        result = await self.call_tool(name, arguments)
        return parse_result(name, result, response_model)

    def _create_transport(self) -> MCPTransport:
        """Build the appropriate transport from the server reference."""
        ref = self._ref
        if ref.transport == "stdio":
            if not ref.command:
                msg = "ServerRef with stdio transport must specify 'command'"
                raise ValueError(msg)
            env = dict(ref.env) if ref.env else None
            return StdioTransport(command=ref.command, env=env)
        if ref.transport == "tcp":
            if not ref.host or ref.port is None:
                msg = "ServerRef with tcp transport must specify 'host' and 'port'"
                raise ValueError(msg)
            return TcpTransport(ref.host, ref.port)
        if not ref.url:
            msg = "ServerRef with http transport must specify 'url'"
            raise ValueError(msg)
        return StreamableHttpTransport(ref.url)

    async def _handshake(self) -> None:
        """Perform the MCP initialize handshake."""
        response = await self._send_request(
            "initialize",
            params={
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": self._client_name, "version": __version__},
            },
        )
        if response.error is not None:
            raise ConnectionError(f"initialize failed: {response.error.message}")
        self._server_info = response.result or {}
        await self._send_notification("notifications/initialized")

    async def _send_notification(self, method: str, params: dict[str, Any] | None = None) -> None:
        if self._transport is None:
            msg = "Client not connected"
            raise RuntimeError(msg)
        notification = JsonRpcRequest(method=method, params=params or {})
        await self._transport.send(notification.model_dump(exclude={"id"}))

    async def _send_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
    ) -> JsonRpcResponse:
        """Send a JSON-RPC request and wait for the matching response."""
        if self._transport is None:
            msg = "Client not connected"
            raise RuntimeError(msg)

        request_id = self._next_id
        self._next_id += 1

        request = JsonRpcRequest(
            method=method,
            id=request_id,
            params=params or {},
        )
        await self._transport.send(request.model_dump())
        for _ in range(_MAX_SKIPPED_MESSAGES):
            raw = await self._transport.receive()
            if "method" in raw:
                continue
            response = JsonRpcResponse.model_validate(raw)
            if response.id in (request_id, None):
                return response
        msg = f"No response to request {request_id} ({method})"
        raise ConnectionError(msg)


def parse_result(name: str, result: CallToolResult, response_model: type[ResponseT]) -> ResponseT:
    """Convert the primary content item of *result* into *response_model*.

    An empty envelope yields the model's default value; when the model has
    required fields :class:`ProtocolEnvelopeEmptyError` is raised instead.
    """
    primary = result.primary
    if primary is None:
        try:
            return response_model()
        except ValidationError as exc:
            raise ProtocolEnvelopeEmptyError(name) from exc
    try:
        if isinstance(primary, JsonContent):
            return response_model.model_validate(primary.value)
        return response_model.model_validate_json(primary.text)
    except ValidationError as exc:
        raise ResponseDecodeError(name, str(exc)) from exc


def _first_text(result: CallToolResult) -> str:
    primary = result.primary
    if primary is None:
        return ""
    if isinstance(primary, JsonContent):
        return json.dumps(primary.value)
    return primary.text
