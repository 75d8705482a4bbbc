"""Elasticsearch service — ``list_indices`` via the cat indices API.

Unlike the other services the target cluster is named by the request itself
(``base_url`` and optional ``api_key``); the connection config, when present,
only contributes the timeout.
"""

from __future__ import annotations

import logging

from pydantic import AliasChoices, Field, RootModel, SecretStr

from mcpbridge.core.config import DEFAULT_TIMEOUT, ConnectionConfig
from mcpbridge.core.schema import ToolModel
from mcpbridge.downstream.client import DownstreamClient
from mcpbridge.protocols.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

INSTRUCTIONS = "A MCP server that can access the Elasticsearch database"

CAT_INDICES_PATH = "_cat/indices"


class ListIndicesRequest(ToolModel):
    base_url: str = Field(min_length=1, description="the base url of the elasticsearch server")
    api_key: str | None = Field(default=None, description="the api key of the elasticsearch server")


class IndexInfo(ToolModel):
    health: str = Field(description="current health status")
    status: str = Field(description="open/close status")
    index: str = Field(description="index name")
    uuid: str = Field(description="uuid")
    pri: str = Field(description="number of primary shards")
    rep: str = Field(description="number of replica shards")
    docs_count: str | None = Field(
        default=None,
        validation_alias=AliasChoices("docs.count", "docs_count"),
        description="available docs",
    )
    docs_deleted: str | None = Field(
        default=None,
        validation_alias=AliasChoices("docs.deleted", "docs_deleted"),
        description="deleted docs",
    )
    store_size: str | None = Field(
        default=None,
        validation_alias=AliasChoices("store.size", "store_size"),
        description="store size",
    )
    pri_store_size: str | None = Field(
        default=None,
        validation_alias=AliasChoices("pri.store.size", "pri_store_size"),
        description="primary shard size",
    )
    dataset_size: str | None = Field(
        default=None,
        validation_alias=AliasChoices("dataset.size", "dataset_size"),
        description="dataset size",
    )


class ListIndicesResponse(ToolModel):
    indices: list[IndexInfo] = Field(default_factory=list)


class CatIndicesResponse(RootModel[list[IndexInfo]]):
    """``GET _cat/indices?format=json`` body."""


def to_list_indices(response: CatIndicesResponse) -> ListIndicesResponse:
    return ListIndicesResponse(indices=list(response.root))


async def list_indices(request: ListIndicesRequest, ctx: ToolContext) -> ListIndicesResponse:
    logger.info("Listing indices of %s", request.base_url)
    stored = ctx.config_store.get()
    config = ConnectionConfig(
        base_url=request.base_url,
        api_key=SecretStr(request.api_key) if request.api_key else None,
        timeout=stored.timeout if stored is not None else DEFAULT_TIMEOUT,
    )
    client = DownstreamClient(
        config,
        service="elastic",
        auth_scheme="ApiKey",
        transport=ctx.http_transport,
    )
    response = await client.get_json(
        CAT_INDICES_PATH,
        CatIndicesResponse,
        operation="list indices",
        params={"format": "json"},
    )
    result = to_list_indices(response)
    logger.info("Found %d index(es)", len(result.indices))
    return result


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        "list_indices",
        "List all indices in the Elasticsearch database",
        ListIndicesRequest,
        list_indices,
        response_model=ListIndicesResponse,
    )
    return registry
