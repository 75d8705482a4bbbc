"""Keyword-search service — ``create_index`` and ``search_documents``.

Wraps a keyword-search server exposing ``POST /v1/index/create`` and
``POST /v1/search``.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from mcpbridge.core.schema import ToolModel
from mcpbridge.downstream.client import DownstreamClient
from mcpbridge.protocols.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

INSTRUCTIONS = "A MCP server that can access the KeywordSearch database"

CREATE_INDEX_PATH = "v1/index/create"
SEARCH_PATH = "v1/search"

# ---------------------------------------------------------------------------
# Tool models
# ---------------------------------------------------------------------------


class KwDocumentInput(ToolModel):
    content: str = Field(description="The content of the document")
    title: str | None = Field(default=None, description="The title of the document")


class CreateIndexRequest(ToolModel):
    name: str = Field(description="The name of the index to create")
    documents: list[KwDocumentInput] = Field(description="The documents to index")


class DocumentResult(ToolModel):
    filename: str = Field(default="", description="The name of the indexed document")
    status: str = Field(description="The indexing status of the document")
    error: str | None = Field(default=None, description="The indexing error, if any")


class CreateIndexResponse(ToolModel):
    index_name: str | None = Field(default=None, description="The name of the created index")
    results: list[DocumentResult] = Field(
        default_factory=list, description="The per-document indexing results"
    )


class SearchDocumentsRequest(ToolModel):
    index_name: str = Field(description="The name of the index to search")
    query: str = Field(description="The query to search for")
    limit: int = Field(ge=1, description="The maximum number of hits to return")


class KwSearchHit(ToolModel):
    id: int = Field(description="The rank of the hit, starting at 1")
    title: str = Field(description="The title of the matching document")
    content: str = Field(description="The content of the matching document")
    score: float = Field(default=0.0, description="The relevance score of the hit")


class SearchDocumentsResponse(ToolModel):
    hits: list[KwSearchHit] = Field(default_factory=list, description="The ranked hits")


# ---------------------------------------------------------------------------
# Downstream models
# ---------------------------------------------------------------------------


class KwDocument(BaseModel):
    content: str
    title: str | None = None


class IndexRequest(BaseModel):
    index: str
    documents: list[KwDocument]


class IndexResponse(BaseModel):
    index_name: str | None = None
    results: list[DocumentResult] = []


class QueryRequest(BaseModel):
    query: str
    top_k: int
    index: str


class SearchHit(BaseModel):
    title: str = ""
    content: str
    score: float = 0.0


class QueryResponse(BaseModel):
    hits: list[SearchHit] = []


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


def to_index_request(request: CreateIndexRequest) -> IndexRequest:
    return IndexRequest(
        index=request.name,
        documents=[KwDocument(content=d.content, title=d.title) for d in request.documents],
    )


def to_create_index_response(response: IndexResponse, requested_name: str) -> CreateIndexResponse:
    return CreateIndexResponse(
        index_name=response.index_name or requested_name,
        results=list(response.results),
    )


def to_query_request(request: SearchDocumentsRequest) -> QueryRequest:
    return QueryRequest(query=request.query, top_k=request.limit, index=request.index_name)


def to_search_documents_response(response: QueryResponse, limit: int) -> SearchDocumentsResponse:
    """Rank the hits (1-based ``id``) and keep at most *limit* of them."""
    hits = [
        KwSearchHit(id=rank, title=hit.title, content=hit.content, score=hit.score)
        for rank, hit in enumerate(response.hits[:limit], start=1)
    ]
    return SearchDocumentsResponse(hits=hits)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def create_index(request: CreateIndexRequest, ctx: ToolContext) -> CreateIndexResponse:
    config = ctx.config_store.require()
    logger.info("Creating index %s in KeywordSearch database", request.name)

    client = DownstreamClient(config, service="kwsearch", transport=ctx.http_transport)
    response = await client.post_json(
        CREATE_INDEX_PATH,
        to_index_request(request),
        IndexResponse,
        operation="create index",
    )

    logger.info("Index created in KeywordSearch database")
    return to_create_index_response(response, request.name)


async def search_documents(
    request: SearchDocumentsRequest, ctx: ToolContext
) -> SearchDocumentsResponse:
    config = ctx.config_store.require()
    logger.info("Searching for documents in KeywordSearch database")

    client = DownstreamClient(config, service="kwsearch", transport=ctx.http_transport)
    response = await client.post_json(
        SEARCH_PATH,
        to_query_request(request),
        QueryResponse,
        operation="search documents",
    )

    logger.info("Documents searched in KeywordSearch database")
    return to_search_documents_response(response, request.limit)


def build_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        "create_index",
        "Create an index in the KeywordSearch database",
        CreateIndexRequest,
        create_index,
        response_model=CreateIndexResponse,
    )
    registry.register(
        "search_documents",
        "Search for documents in the KeywordSearch database",
        SearchDocumentsRequest,
        search_documents,
        response_model=SearchDocumentsResponse,
    )
    return registry
