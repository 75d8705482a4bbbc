"""Per-service adapters and the server start-up routine.

Every service module exposes ``build_registry()`` and ``INSTRUCTIONS``;
:data:`SERVICES` is the static table the CLI selects from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from mcpbridge.core.config import ConnectionConfig, ConnectionConfigStore
from mcpbridge.protocols.mcp.server import MCPServer
from mcpbridge.services import elastic, github, kwsearch, tidb

if TYPE_CHECKING:
    import httpx

    from mcpbridge.core.settings import ServerSettings
    from mcpbridge.protocols.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceDefinition:
    """Static description of one bridge service."""

    name: str
    instructions: str
    build_registry: Callable[[], ToolRegistry]
    default_base_url: str | None = None
    requires_connection: bool = True


SERVICES: dict[str, ServiceDefinition] = {
    "github": ServiceDefinition(
        name="github",
        instructions=github.INSTRUCTIONS,
        build_registry=github.build_registry,
        default_base_url=github.DEFAULT_BASE_URL,
    ),
    "tidb": ServiceDefinition(
        name="tidb",
        instructions=tidb.INSTRUCTIONS,
        build_registry=tidb.build_registry,
    ),
    "elastic": ServiceDefinition(
        name="elastic",
        instructions=elastic.INSTRUCTIONS,
        build_registry=elastic.build_registry,
        requires_connection=False,
    ),
    "kwsearch": ServiceDefinition(
        name="kwsearch",
        instructions=kwsearch.INSTRUCTIONS,
        build_registry=kwsearch.build_registry,
    ),
}


def get_service(name: str) -> ServiceDefinition:
    service = SERVICES.get(name)
    if service is None:
        known = ", ".join(sorted(SERVICES))
        msg = f"Unknown service '{name}' (known: {known})"
        raise ValueError(msg)
    return service


def create_server(
    settings: ServerSettings,
    *,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> MCPServer:
    """Build the registry, initialize the config store, and wire up an :class:`MCPServer`.

    The store is initialized here, before any binding accepts a call.
    """
    service = get_service(settings.service)
    registry = service.build_registry()

    store = ConnectionConfigStore()
    connection = settings.connection
    if connection is None and service.default_base_url:
        connection = ConnectionConfig(base_url=service.default_base_url)
    if connection is not None:
        store.initialize(connection)
    elif service.requires_connection:
        logger.warning(
            "No connection config for %s; tool calls will fail until one is set",
            service.name,
        )

    logger.info("Registered tools for %s: %s", service.name, ", ".join(registry.names()))
    return MCPServer(
        settings.name or f"{service.name}-mcp-server",
        registry,
        store,
        instructions=service.instructions,
        http_transport=http_transport,
    )
