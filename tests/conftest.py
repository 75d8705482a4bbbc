"""Shared helpers for the test suite."""

from __future__ import annotations

from typing import Any, Callable

import httpx

from mcpbridge.core.config import ConnectionConfig, ConnectionConfigStore
from mcpbridge.protocols.registry import ToolContext

DOWNSTREAM_URL = "http://downstream.test"

GAIANET_DOCUMENTS = [
    {
        "content": (
            "Gaianet is revolutionizing the AI landscape with a distributed AI "
            "infrastructure that seeks to decentralize the dominance of major players "
            "such as OpenAI, Google, and Anthropic."
        ),
        "title": "section 1",
    },
    {
        "content": (
            "The inception of Gaianet is driven by the necessity to address key issues "
            "in the current AI industry: censorship and bias in AI outputs, lack of "
            "privacy for user data, and the high costs associated with accessing and "
            "developing on centralized AI models."
        ),
        "title": "section 2",
    },
]


def json_transport(
    handler: Callable[[httpx.Request], Any], status_code: int = 200
) -> httpx.MockTransport:
    """A MockTransport answering every request with ``handler(request)`` as JSON.

    The handler may also return an :class:`httpx.Response` to control the
    status or body directly.
    """

    def _respond(request: httpx.Request) -> httpx.Response:
        body = handler(request)
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(_respond)


def make_context(
    base_url: str | None = DOWNSTREAM_URL,
    transport: httpx.AsyncBaseTransport | None = None,
    **config: Any,
) -> ToolContext:
    """A ToolContext whose store is initialized with *base_url* (unset when ``None``)."""
    store = ConnectionConfigStore()
    if base_url is not None:
        store.initialize(ConnectionConfig(base_url=base_url, **config))
    return ToolContext(config_store=store, http_transport=transport, service="test")


class KeywordSearchFake:
    """In-memory stand-in for the keyword-search server."""

    def __init__(self) -> None:
        self.indexes: dict[str, list[dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        import json

        self.requests.append(request)
        body = json.loads(request.content)
        if request.url.path == "/v1/index/create":
            self.indexes[body["index"]] = body["documents"]
            return httpx.Response(
                200,
                json={
                    "index_name": body["index"],
                    "results": [
                        {"filename": doc.get("title") or "", "status": "indexed"}
                        for doc in body["documents"]
                    ],
                },
            )
        if request.url.path == "/v1/search":
            docs = self.indexes.get(body["index"], [])
            words = body["query"].lower().split()
            hits = [
                {
                    "title": doc.get("title") or "",
                    "content": doc["content"],
                    "score": float(sum(doc["content"].lower().count(w) for w in words)),
                }
                for doc in docs
                if any(w in doc["content"].lower() for w in words)
            ]
            hits.sort(key=lambda hit: hit["score"], reverse=True)
            # Deliberately ignore top_k so the bridge's own limit is exercised.
            return httpx.Response(200, json={"hits": hits})
        return httpx.Response(404, text="not found")
