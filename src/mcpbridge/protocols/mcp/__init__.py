"""MCP protocol — models, server handler, transport bindings and client."""

from mcpbridge.protocols.mcp.models import (
    CallToolResult,
    JsonContent,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    TextContent,
    ToolDescriptor,
)

__all__ = [
    "CallToolResult",
    "JsonContent",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "TextContent",
    "ToolDescriptor",
]
