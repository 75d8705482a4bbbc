"""Protocol layer — error taxonomy, tool registry, dispatcher and MCP bindings."""

from mcpbridge.protocols.errors import (
    BridgeError,
    ConfigurationMissingError,
    ConnectionError,
    DownstreamParseError,
    DownstreamUnreachableError,
    InvalidArgumentsError,
    ProtocolEnvelopeEmptyError,
    ProtocolError,
    ToolExecutionError,
    ToolNotFoundError,
)

__all__ = [
    "BridgeError",
    "ConfigurationMissingError",
    "ConnectionError",
    "DownstreamParseError",
    "DownstreamUnreachableError",
    "InvalidArgumentsError",
    "ProtocolEnvelopeEmptyError",
    "ProtocolError",
    "ToolExecutionError",
    "ToolNotFoundError",
]
