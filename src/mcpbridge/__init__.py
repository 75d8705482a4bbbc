"""mcpbridge — transport-agnostic MCP tool bridge for downstream HTTP services."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from mcpbridge.protocols.mcp.client import MCPClient as MCPClient
    from mcpbridge.protocols.mcp.server import MCPServer as MCPServer

_LAZY_EXPORTS = {
    "MCPClient": "mcpbridge.protocols.mcp.client",
    "MCPServer": "mcpbridge.protocols.mcp.server",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'mcpbridge' has no attribute {name!r}")
