"""GitHub service — ``get_star_count`` over the GitHub REST API."""

from __future__ import annotations

import logging
from urllib.parse import quote

from pydantic import BaseModel, Field

from mcpbridge.core.schema import ToolModel
from mcpbridge.downstream.client import DownstreamClient
from mcpbridge.protocols.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"

INSTRUCTIONS = "A MCP server that can access the GitHub API"

_GITHUB_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
}


class GetStarCountRequest(ToolModel):
    owner: str = Field(description="The owner of the Github repository")
    repo: str = Field(description="The name of the Github repository")


class GetStarCountResponse(ToolModel):
    count: int = Field(default=0, ge=0, description="The star count of the Github repository")


class RepositoryResponse(BaseModel):
    """The subset of ``GET /repos/{owner}/{repo}`` the bridge reads."""

    full_name: str = ""
    stargazers_count: int = Field(ge=0)


def to_star_count(repository: RepositoryResponse) -> GetStarCountResponse:
    return GetStarCountResponse(count=repository.stargazers_count)


async def get_star_count(request: GetStarCountRequest, ctx: ToolContext) -> GetStarCountResponse:
    config = ctx.config_store.require()
    logger.info("Getting star count for %s/%s", request.owner, request.repo)

    client = DownstreamClient(
        config,
        service="github",
        headers=_GITHUB_HEADERS,
        transport=ctx.http_transport,
    )
    repository = await client.get_json(
        f"repos/{quote(request.owner, safe='')}/{quote(request.repo, safe='')}",
        RepositoryResponse,
        operation="get star count",
    )
    return to_star_count(repository)


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        "get_star_count",
        "Get the star count of a GitHub repository",
        GetStarCountRequest,
        get_star_count,
        response_model=GetStarCountResponse,
    )
    return registry
