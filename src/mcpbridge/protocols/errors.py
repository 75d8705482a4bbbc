"""Shared error types for the protocol layer.

Server-side failures derive from :class:`BridgeError` and know how to render
themselves as a JSON-RPC error object.  Client-side failures (transport,
error envelopes, undecodable results) derive directly from
:class:`ProtocolError`.
"""

from __future__ import annotations

from typing import Any

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class ProtocolError(Exception):
    """Base error for all protocol-layer failures."""


class ConnectionError(ProtocolError):
    """Failed to connect to an MCP server or external service."""


class RegistrationError(ProtocolError):
    """A tool could not be registered (duplicate name or schema failure)."""


class BridgeError(ProtocolError):
    """A tool invocation failure that is reported to the protocol client."""

    kind = "InternalError"
    code = INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def error_data(self) -> dict[str, Any]:
        return {"kind": self.kind}

    def to_error_object(self) -> dict[str, Any]:
        """Render as a JSON-RPC error object."""
        return {"code": self.code, "message": self.message, "data": self.error_data()}


class ToolNotFoundError(BridgeError):
    """Requested tool does not exist in the registry."""

    kind = "ToolNotFound"
    code = INVALID_PARAMS

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")

    def error_data(self) -> dict[str, Any]:
        return {"kind": self.kind, "tool": self.name}


class InvalidArgumentsError(BridgeError):
    """The argument object did not validate against the tool's schema."""

    kind = "InvalidArguments"
    code = INVALID_PARAMS

    def __init__(self, tool: str, field: str, detail: str) -> None:
        self.tool = tool
        self.field = field
        self.detail = detail
        super().__init__(f"Invalid arguments for {tool}: field '{field}': {detail}")

    def error_data(self) -> dict[str, Any]:
        return {"kind": self.kind, "tool": self.tool, "field": self.field}


class ConfigurationMissingError(BridgeError):
    """A handler needed the connection config but none was set."""

    kind = "ConfigurationMissing"

    def __init__(self, detail: str = "Connection config not found") -> None:
        super().__init__(detail)


class DownstreamUnreachableError(BridgeError):
    """The wrapped HTTP API could not be reached or answered with a failure status."""

    kind = "DownstreamUnreachable"

    def __init__(self, operation: str, detail: str, status_code: int | None = None) -> None:
        self.operation = operation
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"Failed to {operation}: {detail}")

    def error_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind}
        if self.status_code is not None:
            data["status"] = self.status_code
        return data


class DownstreamParseError(BridgeError):
    """The wrapped HTTP API answered with a body that does not match the expected shape."""

    kind = "DownstreamParseError"

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Failed to parse {operation} response: {detail}")


class InternalToolError(BridgeError):
    """A handler raised something that is not a :class:`BridgeError`."""

    def __init__(self, tool: str, detail: str) -> None:
        self.tool = tool
        self.detail = detail
        super().__init__(f"Tool {tool} failed: {detail}")


class ToolExecutionError(ProtocolError):
    """The server answered a tool call with an error envelope."""

    def __init__(self, name: str, detail: str = "", code: int | None = None) -> None:
        self.name = name
        self.detail = detail
        self.code = code
        super().__init__(f"Tool execution failed: {name}" + (f": {detail}" if detail else ""))


class ProtocolEnvelopeEmptyError(ProtocolError):
    """A success envelope had no content and the response type has no default."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Empty result envelope for tool: {name}")


class ResponseDecodeError(ProtocolError):
    """The primary content item could not be decoded into the expected response type."""

    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Cannot decode result of {name}: {detail}")
