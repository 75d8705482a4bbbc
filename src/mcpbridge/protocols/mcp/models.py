"""MCP models — JSON-RPC 2.0 messages, tool descriptors and result envelopes.

Implements the message format used by the Model Context Protocol for
tool discovery (``tools/list``) and execution (``tools/call``).
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

PROTOCOL_VERSION = "2024-11-05"

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request (or notification, when ``id`` is ``None``)."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    id: int | str | None = None
    params: dict[str, Any] = {}

    @property
    def is_notification(self) -> bool:
        return self.id is None


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize with exactly one of ``result`` / ``error``."""
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result if self.result is not None else {}
        return payload


# ---------------------------------------------------------------------------
# MCP-specific payloads
# ---------------------------------------------------------------------------


class ToolDescriptor(BaseModel):
    """A tool definition as returned by ``tools/list``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class CallToolParams(BaseModel):
    """Parameters of a ``tools/call`` request."""

    name: str
    arguments: Any = None


class TextContent(BaseModel):
    """Plain text content item."""

    type: Literal["text"] = "text"
    text: str


class JsonContent(BaseModel):
    """Structured JSON content item."""

    type: Literal["json"] = "json"
    value: Any = None


ContentItem = Annotated[TextContent | JsonContent, Field(discriminator="type")]


class CallToolResult(BaseModel):
    """The result envelope of a ``tools/call`` request."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[ContentItem] = []
    is_error: bool = Field(default=False, alias="isError")

    @property
    def primary(self) -> TextContent | JsonContent | None:
        """The first content item, or ``None`` for an empty envelope."""
        return self.content[0] if self.content else None

    @classmethod
    def from_json(cls, value: Any) -> CallToolResult:
        return cls(content=[JsonContent(value=value)])

    @classmethod
    def from_text(cls, text: str) -> CallToolResult:
        return cls(content=[TextContent(text=text)])

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
