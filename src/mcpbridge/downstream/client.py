"""DownstreamClient — the outbound HTTP call behind every tool handler.

Builds the URL from the trimmed base URL and an operation path, sends JSON,
and validates the JSON answer into a pydantic model.  ``httpx`` errors never
leave this module: transport failures and non-success statuses become
:class:`DownstreamUnreachableError`, undecodable or mismatched bodies become
:class:`DownstreamParseError`.  Every call is a fresh round trip; nothing is
cached or retried.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from mcpbridge.core.config import ConnectionConfig
from mcpbridge.protocols.errors import DownstreamParseError, DownstreamUnreachableError
from mcpbridge.utils.telemetry import (
    ATTR_DOWNSTREAM_METHOD,
    ATTR_DOWNSTREAM_STATUS,
    ATTR_DOWNSTREAM_URL,
    ATTR_SERVICE,
    get_tracer,
    mark_failed,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

AuthScheme = Literal["Bearer", "ApiKey", "digest", "none"]

_BODY_PREVIEW = 200
USER_AGENT = "mcpbridge"


def join_url(base_url: str, path: str) -> str:
    """Join *base_url* (trailing slashes removed) with an operation *path*."""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class DownstreamClient:
    """Performs JSON calls against one downstream service.

    Usage::

        client = DownstreamClient(config, service="kwsearch")
        response = await client.post_json(
            "v1/search", QueryRequest(...), QueryResponse, operation="search documents"
        )
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        service: str = "",
        auth_scheme: AuthScheme = "Bearer",
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._service = service
        self._auth_scheme = auth_scheme
        self._headers = headers or {}
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._config.trimmed_base_url

    def url(self, path: str) -> str:
        return join_url(self._config.base_url, path)

    async def get_json(
        self,
        path: str,
        model: type[ModelT],
        *,
        operation: str,
        params: dict[str, Any] | None = None,
    ) -> ModelT:
        response = await self._request("GET", path, operation=operation, params=params)
        return self.parse(response, model, operation=operation)

    async def post_json(
        self,
        path: str,
        body: BaseModel | dict[str, Any] | list[Any],
        model: type[ModelT],
        *,
        operation: str,
    ) -> ModelT:
        payload = body.model_dump(mode="json", exclude_none=True) if isinstance(body, BaseModel) else body
        response = await self._request("POST", path, operation=operation, json=payload)
        return self.parse(response, model, operation=operation)

    @staticmethod
    def parse(response: httpx.Response, model: type[ModelT], *, operation: str) -> ModelT:
        """Decode *response* as JSON and validate it into *model*."""
        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Failed to parse %s response: %s", operation, exc)
            raise DownstreamParseError(operation, str(exc)) from exc
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            logger.error("Unexpected %s response shape: %s", operation, exc)
            raise DownstreamParseError(operation, str(exc)) from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        url = self.url(path)
        with _tracer.start_as_current_span("mcpbridge.downstream.request") as span:
            span.set_attribute(ATTR_SERVICE, self._service)
            span.set_attribute(ATTR_DOWNSTREAM_METHOD, method)
            span.set_attribute(ATTR_DOWNSTREAM_URL, url)
            logger.debug("%s %s", method, url)
            try:
                async with httpx.AsyncClient(
                    timeout=self._config.timeout,
                    transport=self._transport,
                    auth=self._auth(),
                ) as client:
                    response = await client.request(
                        method,
                        url,
                        params=params,
                        json=json,
                        headers=self._request_headers(),
                    )
            except httpx.HTTPError as exc:
                detail = str(exc) or type(exc).__name__
                logger.error("Failed to %s: %s", operation, detail)
                error = DownstreamUnreachableError(operation, detail)
                mark_failed(span, error)
                raise error from exc
            span.set_attribute(ATTR_DOWNSTREAM_STATUS, response.status_code)

            if not response.is_success:
                preview = response.text[:_BODY_PREVIEW]
                detail = f"HTTP {response.status_code} from {url}: {preview}"
                logger.error("Failed to %s: %s", operation, detail)
                error = DownstreamUnreachableError(
                    operation, detail, status_code=response.status_code
                )
                mark_failed(span, error)
                raise error
        return response

    def _auth(self) -> httpx.Auth | None:
        if self._auth_scheme != "digest" or not self._config.username:
            return None
        password = self._config.password.get_secret_value() if self._config.password else ""
        return httpx.DigestAuth(self._config.username, password)

    def _request_headers(self) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json", **self._headers}
        api_key = self._config.api_key
        if api_key is not None and self._auth_scheme in ("Bearer", "ApiKey"):
            headers["Authorization"] = f"{self._auth_scheme} {api_key.get_secret_value()}"
        return headers
