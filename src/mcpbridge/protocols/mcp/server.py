"""MCPServer — answers decoded JSON-RPC messages on behalf of a tool registry.

Transport bindings own framing and connection handling; they hand every
decoded message to :meth:`MCPServer.handle_message` and write back whatever
it returns (``None`` for notifications).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from mcpbridge import __version__
from mcpbridge.protocols.dispatcher import ToolDispatcher
from mcpbridge.protocols.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
)
from mcpbridge.protocols.mcp.models import (
    PROTOCOL_VERSION,
    CallToolParams,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
)
from mcpbridge.protocols.registry import ToolContext

if TYPE_CHECKING:
    import httpx

    from mcpbridge.core.config import ConnectionConfigStore
    from mcpbridge.protocols.registry import ToolRegistry

logger = logging.getLogger(__name__)


class MCPServer:
    """Transport-agnostic MCP request handler.

    Usage::

        server = MCPServer("kwsearch", registry, store)
        reply = await server.handle_message({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
    """

    def __init__(
        self,
        name: str,
        registry: ToolRegistry,
        config_store: ConnectionConfigStore,
        *,
        version: str = __version__,
        instructions: str | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self.version = version
        self.instructions = instructions
        self.config_store = config_store
        context = ToolContext(
            config_store=config_store,
            http_transport=http_transport,
            service=name,
        )
        self.dispatcher = ToolDispatcher(registry, context)

    @property
    def registry(self) -> ToolRegistry:
        return self.dispatcher.registry

    def server_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self.name, "version": self.version},
        }
        if self.instructions:
            info["instructions"] = self.instructions
        return info

    async def handle_payload(self, payload: Any) -> Any:
        """Handle a single message or a batch; ``None`` means nothing to send."""
        if isinstance(payload, list):
            if not payload:
                return _error_response(None, INVALID_REQUEST, "Empty batch")
            replies = [await self.handle_message(item) for item in payload]
            answered = [reply for reply in replies if reply is not None]
            return answered or None
        return await self.handle_message(payload)

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        """Handle one decoded JSON-RPC message."""
        if not isinstance(message, dict):
            return _error_response(None, INVALID_REQUEST, "Request must be a JSON object")
        if "method" not in message and ("result" in message or "error" in message):
            # Responses to server-initiated requests; none are ever sent.
            return None
        try:
            request = JsonRpcRequest.model_validate(message)
        except ValidationError as exc:
            return _error_response(message.get("id"), INVALID_REQUEST, f"Invalid request: {exc}")

        if request.is_notification:
            logger.debug("Notification received: %s", request.method)
            return None

        try:
            result = await self._route(request)
        except _MethodError as exc:
            return _error_response(request.id, exc.code, exc.message, exc.data)
        except Exception as exc:
            logger.exception("Unhandled error for %s", request.method)
            return _error_response(request.id, INTERNAL_ERROR, str(exc))
        return JsonRpcResponse(id=request.id, result=result).to_wire()

    async def _route(self, request: JsonRpcRequest) -> dict[str, Any]:
        method = request.method
        if method == "initialize":
            client = request.params.get("clientInfo", {})
            logger.info("Client connected: %s", client.get("name", "unknown"))
            return self.server_info()
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": [d.to_wire() for d in self.dispatcher.list_tools()]}
        if method == "tools/call":
            return await self._call_tool(request.params)
        raise _MethodError(METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            call = CallToolParams.model_validate(params)
        except ValidationError as exc:
            raise _MethodError(INVALID_PARAMS, f"Invalid tools/call params: {exc}") from exc

        invocation = await self.dispatcher.dispatch(call.name, call.arguments)
        if invocation.error is not None:
            error = invocation.error.to_error_object()
            raise _MethodError(error["code"], error["message"], error["data"])
        assert invocation.result is not None
        return invocation.result.to_wire()


class _MethodError(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)


def _error_response(
    request_id: Any, code: int, message: str, data: Any = None
) -> dict[str, Any]:
    if not isinstance(request_id, (int, str)):
        request_id = None
    error = JsonRpcError(code=code, message=message, data=data)
    return JsonRpcResponse(id=request_id, error=error).to_wire()
