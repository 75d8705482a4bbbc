"""ToolRegistry — the explicit, start-up-built map from tool name to handler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterator

from pydantic import BaseModel

from mcpbridge.core.schema import input_schema
from mcpbridge.protocols.errors import RegistrationError, ToolNotFoundError
from mcpbridge.protocols.mcp.models import CallToolResult, ToolDescriptor

if TYPE_CHECKING:
    import httpx

    from mcpbridge.core.config import ConnectionConfigStore


@dataclass
class ToolContext:
    """Per-server dependencies handed to every tool handler."""

    config_store: ConnectionConfigStore
    http_transport: httpx.AsyncBaseTransport | None = None
    service: str = ""


ToolHandler = Callable[[Any, ToolContext], Awaitable[BaseModel | CallToolResult]]


@dataclass(frozen=True)
class RegisteredTool:
    """A tool's descriptor together with its typed request model and handler."""

    descriptor: ToolDescriptor
    request_model: type[BaseModel]
    handler: ToolHandler
    response_model: type[BaseModel] | None = None

    @property
    def name(self) -> str:
        return self.descriptor.name


@dataclass
class ToolRegistry:
    """Ordered, duplicate-free set of tools.

    Usage::

        registry = ToolRegistry()
        registry.register(
            "get_star_count",
            "Get the star count of a GitHub repository",
            GetStarCountRequest,
            get_star_count,
            response_model=GetStarCountResponse,
        )
    """

    _tools: dict[str, RegisteredTool] = field(default_factory=dict)

    def register(
        self,
        name: str,
        description: str,
        request_model: type[BaseModel],
        handler: ToolHandler,
        *,
        response_model: type[BaseModel] | None = None,
    ) -> RegisteredTool:
        """Add a tool; the schema is generated here so failures surface at start-up."""
        if not name:
            msg = "Tool name must not be empty"
            raise RegistrationError(msg)
        if name in self._tools:
            msg = f"Tool already registered: {name}"
            raise RegistrationError(msg)
        descriptor = ToolDescriptor(
            name=name,
            description=description,
            input_schema=input_schema(request_model),
        )
        tool = RegisteredTool(
            descriptor=descriptor,
            request_model=request_model,
            handler=handler,
            response_model=response_model,
        )
        self._tools[name] = tool
        return tool

    def get(self, name: str) -> RegisteredTool:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def descriptors(self) -> list[ToolDescriptor]:
        """Tool descriptors in registration order."""
        return [tool.descriptor for tool in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[RegisteredTool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
