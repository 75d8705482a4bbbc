"""TiDB service — full-text ``search`` through a TiDB Data Service endpoint.

The endpoint is a published Data Service API (``GET {base_url}/search``)
whose SQL returns ``id``, ``title`` and ``content`` columns.  Data Service
authenticates with HTTP digest auth (public key / private key) and returns
every column value as a string, so rows are coerced into typed hits here.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from mcpbridge.core.schema import ToolModel
from mcpbridge.downstream.client import DownstreamClient
from mcpbridge.protocols.errors import DownstreamParseError
from mcpbridge.protocols.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

INSTRUCTIONS = "A MCP server that can access the TiDB database"

SEARCH_PATH = "search"


class TidbSearchRequest(ToolModel):
    query: str = Field(description="The query to search for")


class TidbSearchHit(ToolModel):
    id: int = Field(description="The id of the matching row")
    title: str = Field(description="The title of the matching row")
    content: str = Field(description="The content of the matching row")


class TidbSearchResponse(ToolModel):
    hits: list[TidbSearchHit] = Field(
        default_factory=list, description="The hits of the tidb server"
    )


class DataServiceData(BaseModel):
    columns: list[dict[str, Any]] = []
    rows: list[dict[str, Any]] = []


class DataServiceResponse(BaseModel):
    """Envelope returned by a TiDB Data Service endpoint."""

    type: str = ""
    data: DataServiceData


def to_search_response(response: DataServiceResponse) -> TidbSearchResponse:
    try:
        hits = [TidbSearchHit.model_validate(row) for row in response.data.rows]
    except ValidationError as exc:
        raise DownstreamParseError("tidb search", str(exc)) from exc
    return TidbSearchResponse(hits=hits)


async def search(request: TidbSearchRequest, ctx: ToolContext) -> TidbSearchResponse:
    config = ctx.config_store.require()
    logger.info("Searching TiDB for %r", request.query)

    client = DownstreamClient(
        config,
        service="tidb",
        auth_scheme="digest" if config.username else "Bearer",
        transport=ctx.http_transport,
    )
    response = await client.get_json(
        SEARCH_PATH,
        DataServiceResponse,
        operation="search tidb",
        params={"query": request.query},
    )
    result = to_search_response(response)
    logger.info("TiDB search returned %d hit(s)", len(result.hits))
    return result


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        "search",
        "Perform a full-text search in the TiDB database",
        TidbSearchRequest,
        search,
        response_model=TidbSearchResponse,
    )
    return registry
