"""Tests for MCPClient with mocked transport."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import Field

from mcpbridge.core.schema import ToolModel
from mcpbridge.core.settings import ServerRef
from mcpbridge.protocols.errors import (
    INVALID_PARAMS,
    ConnectionError,
    ProtocolEnvelopeEmptyError,
    ResponseDecodeError,
    ToolExecutionError,
)
from mcpbridge.protocols.mcp.client import MCPClient, parse_result
from mcpbridge.protocols.mcp.models import CallToolResult
from mcpbridge.protocols.mcp.transport import StdioTransport, StreamableHttpTransport, TcpTransport

_INIT = {"jsonrpc": "2.0", "id": 1, "result": {"serverInfo": {"name": "kwsearch"}}}


class _Hit(ToolModel):
    id: int
    title: str
    content: str


class _Hits(ToolModel):
    hits: list[_Hit] = Field(default_factory=list)


class _Count(ToolModel):
    count: int


def _make_transport(responses: list[dict] | None = None) -> MagicMock:
    """Create a mock transport that returns a sequence of JSON-RPC responses."""
    transport = MagicMock()
    transport.connect = AsyncMock()
    transport.close = AsyncMock()
    transport.send = AsyncMock()
    transport.receive = AsyncMock(side_effect=responses if responses is not None else [_INIT])
    return transport


def _ref() -> ServerRef:
    return ServerRef(name="test", command="mcpbridge serve kwsearch")


def _tools_list_response(request_id: int = 2) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "result": {
            "tools": [
                {
                    "name": "create_index",
                    "description": "Create an index",
                    "inputSchema": {
                        "type": "object",
                        "properties": {"name": {"type": "string"}},
                        "required": ["name"],
                    },
                },
                {
                    "name": "search_documents",
                    "description": "Search for documents",
                    "inputSchema": {"type": "object", "properties": {}},
                },
            ]
        },
    }


def _json_result(value: object, request_id: int = 2) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "result": {"content": [{"type": "json", "value": value}], "isError": False},
    }


class TestMCPClientConnect:
    async def test_connect_performs_handshake(self) -> None:
        transport = _make_transport()

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            client = MCPClient(_ref())
            await client.connect()

        transport.connect.assert_awaited_once()
        methods = [call.args[0]["method"] for call in transport.send.call_args_list]
        assert methods == ["initialize", "notifications/initialized"]
        assert "id" not in transport.send.call_args_list[1].args[0]
        assert client.server_info["serverInfo"]["name"] == "kwsearch"

    async def test_connect_error_raises(self) -> None:
        transport = MagicMock()
        transport.connect = AsyncMock(side_effect=OSError("spawn failed"))

        with (
            patch.object(MCPClient, "_create_transport", return_value=transport),
            pytest.raises(ConnectionError, match="spawn failed"),
        ):
            await MCPClient(_ref()).connect()

    async def test_initialize_error_raises(self) -> None:
        transport = _make_transport(
            [{"jsonrpc": "2.0", "id": 1, "error": {"code": -32603, "message": "nope"}}]
        )

        with (
            patch.object(MCPClient, "_create_transport", return_value=transport),
            pytest.raises(ConnectionError, match="initialize failed"),
        ):
            await MCPClient(_ref()).connect()

    async def test_context_manager(self) -> None:
        transport = _make_transport()

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            async with MCPClient(_ref()):
                pass
        transport.close.assert_awaited_once()

    async def test_request_before_connect_raises(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            await MCPClient(_ref()).list_tools()


class TestMCPClientDiscovery:
    async def test_list_tools(self) -> None:
        transport = _make_transport([_INIT, _tools_list_response()])

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            async with MCPClient(_ref()) as client:
                tools = await client.list_tools()

        assert [tool.name for tool in tools] == ["create_index", "search_documents"]
        assert tools[0].input_schema["required"] == ["name"]

    async def test_list_empty(self) -> None:
        transport = _make_transport([_INIT, {"jsonrpc": "2.0", "id": 2, "result": {"tools": []}}])

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            async with MCPClient(_ref()) as client:
                assert await client.list_tools() == []

    async def test_server_messages_skipped(self) -> None:
        transport = _make_transport(
            [
                _INIT,
                {"jsonrpc": "2.0", "method": "notifications/message", "params": {}},
                _tools_list_response(),
            ]
        )

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            async with MCPClient(_ref()) as client:
                tools = await client.list_tools()

        assert len(tools) == 2


class TestMCPClientCallTool:
    async def test_call_tool_sends_arguments(self) -> None:
        transport = _make_transport([_INIT, _json_result({"count": 3})])

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            async with MCPClient(_ref()) as client:
                result = await client.call_tool("get_star_count", {"owner": "o", "repo": "r"})

        sent = transport.send.call_args_list[-1].args[0]
        assert sent["method"] == "tools/call"
        assert sent["id"] == 2
        assert sent["params"] == {"name": "get_star_count", "arguments": {"owner": "o", "repo": "r"}}
        assert result.primary is not None

    async def test_call_tool_dumps_models(self) -> None:
        transport = _make_transport([_INIT, _json_result({"hits": []})])
        request = _Hit(id=1, title="t", content="c")

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            async with MCPClient(_ref()) as client:
                await client.call_tool("echo", request)

        sent = transport.send.call_args_list[-1].args[0]
        assert sent["params"]["arguments"] == {"id": 1, "title": "t", "content": "c"}

    async def test_error_envelope_raises(self) -> None:
        transport = _make_transport(
            [
                _INIT,
                {
                    "jsonrpc": "2.0",
                    "id": 2,
                    "error": {"code": INVALID_PARAMS, "message": "Tool not found: nope"},
                },
            ]
        )

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            async with MCPClient(_ref()) as client:
                with pytest.raises(ToolExecutionError, match="Tool not found: nope") as exc_info:
                    await client.call_tool("nope", {})

        assert exc_info.value.code == INVALID_PARAMS

    async def test_is_error_result_raises(self) -> None:
        transport = _make_transport(
            [
                _INIT,
                {
                    "jsonrpc": "2.0",
                    "id": 2,
                    "result": {"content": [{"type": "text", "text": "bad"}], "isError": True},
                },
            ]
        )

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            async with MCPClient(_ref()) as client:
                with pytest.raises(ToolExecutionError, match="bad"):
                    await client.call_tool("t", {})


class TestMCPClientInvoke:
    async def test_invoke_returns_typed_response(self) -> None:
        hits = {"hits": [{"id": 1, "title": "section 1", "content": "Gaianet ..."}]}
        transport = _make_transport([_INIT, _json_result(hits)])

        with patch.object(MCPClient, "_create_transport", return_value=transport):
            async with MCPClient(_ref()) as client:
                response = await client.invoke(
                    "search_documents",
                    {"index_name": "mcp-test", "query": "Gaianet", "limit": 2},
                    _Hits,
                )

        assert isinstance(response, _Hits)
        assert response.hits[0].title == "section 1"


class TestParseResult:
    def test_json_content(self) -> None:
        result = CallToolResult.from_json({"count": 42})
        assert parse_result("t", result, _Count) == _Count(count=42)

    def test_text_content_parsed_as_json(self) -> None:
        result = CallToolResult.from_text(json.dumps({"count": 7}))
        assert parse_result("t", result, _Count).count == 7

    def test_only_first_item_used(self) -> None:
        result = CallToolResult.model_validate(
            {
                "content": [
                    {"type": "json", "value": {"count": 1}},
                    {"type": "json", "value": {"count": 2}},
                ]
            }
        )
        assert parse_result("t", result, _Count).count == 1

    def test_empty_envelope_uses_default(self) -> None:
        assert parse_result("t", CallToolResult(), _Hits) == _Hits()

    def test_empty_envelope_without_default_raises(self) -> None:
        with pytest.raises(ProtocolEnvelopeEmptyError, match="t"):
            parse_result("t", CallToolResult(), _Count)

    def test_mismatched_content_raises(self) -> None:
        with pytest.raises(ResponseDecodeError):
            parse_result("t", CallToolResult.from_json({"total": 1}), _Count)

    def test_non_json_text_raises(self) -> None:
        with pytest.raises(ResponseDecodeError):
            parse_result("t", CallToolResult.from_text("not json"), _Count)


class TestMCPClientTransportFactory:
    def test_stdio_transport(self) -> None:
        client = MCPClient(ServerRef(transport="stdio", command="mcpbridge serve github"))
        assert isinstance(client._create_transport(), StdioTransport)

    def test_tcp_transport(self) -> None:
        client = MCPClient(ServerRef(transport="tcp", host="127.0.0.1", port=8005))
        assert isinstance(client._create_transport(), TcpTransport)

    def test_http_transport(self) -> None:
        client = MCPClient(ServerRef(transport="http", url="http://127.0.0.1:8005/mcp"))
        assert isinstance(client._create_transport(), StreamableHttpTransport)

    def test_stdio_without_command_raises(self) -> None:
        client = MCPClient(ServerRef.model_construct(transport="stdio", command=None, env=None))
        with pytest.raises(ValueError, match="command"):
            client._create_transport()

    def test_http_without_url_raises(self) -> None:
        client = MCPClient(ServerRef.model_construct(transport="http", url=None))
        with pytest.raises(ValueError, match="url"):
            client._create_transport()
