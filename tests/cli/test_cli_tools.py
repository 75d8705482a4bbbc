"""Tests for ``mcpbridge tools`` CLI commands."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from mcpbridge.cli import main
from mcpbridge.protocols.errors import ToolExecutionError
from mcpbridge.protocols.mcp.models import CallToolResult, ToolDescriptor

_DESCRIPTORS = [
    ToolDescriptor(
        name="search_documents",
        description="Search for documents",
        input_schema={
            "type": "object",
            "properties": {"index_name": {}, "query": {}, "limit": {}, "extra": {}},
            "required": ["index_name", "query", "limit"],
        },
    )
]


def _mock_client(mock_client_cls: MagicMock) -> MagicMock:
    mock_instance = mock_client_cls.return_value
    mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_instance.__aexit__ = AsyncMock(return_value=False)
    return mock_instance


class TestToolsList:
    def test_list_tools_table(self) -> None:
        with patch("mcpbridge.protocols.mcp.client.MCPClient") as mock_client_cls:
            mock_instance = _mock_client(mock_client_cls)
            mock_instance.list_tools = AsyncMock(return_value=_DESCRIPTORS)

            result = CliRunner().invoke(main, ["tools", "list", "mcpbridge serve kwsearch"])

        assert result.exit_code == 0
        assert "search_documents" in result.output
        ref = mock_client_cls.call_args.args[0]
        assert ref.transport == "stdio"
        assert ref.command == "mcpbridge serve kwsearch"

    def test_list_tools_json(self) -> None:
        with patch("mcpbridge.protocols.mcp.client.MCPClient") as mock_client_cls:
            mock_instance = _mock_client(mock_client_cls)
            mock_instance.list_tools = AsyncMock(return_value=_DESCRIPTORS)

            result = CliRunner().invoke(
                main, ["tools", "list", "127.0.0.1:8005", "--transport", "tcp", "--json"]
            )

        assert result.exit_code == 0
        assert json.loads(result.output)[0]["name"] == "search_documents"
        ref = mock_client_cls.call_args.args[0]
        assert (ref.host, ref.port) == ("127.0.0.1", 8005)

    def test_list_no_tools(self) -> None:
        with patch("mcpbridge.protocols.mcp.client.MCPClient") as mock_client_cls:
            mock_instance = _mock_client(mock_client_cls)
            mock_instance.list_tools = AsyncMock(return_value=[])

            result = CliRunner().invoke(main, ["tools", "list", "mcpbridge serve github"])

        assert result.exit_code == 0
        assert "No tools available" in result.output

    def test_list_error(self) -> None:
        with patch("mcpbridge.protocols.mcp.client.MCPClient") as mock_client_cls:
            mock_instance = mock_client_cls.return_value
            mock_instance.__aenter__ = AsyncMock(side_effect=RuntimeError("fail"))
            mock_instance.__aexit__ = AsyncMock(return_value=False)

            result = CliRunner().invoke(main, ["tools", "list", "bad-command"])

        assert result.exit_code == 1
        assert "Discovery error" in result.output

    def test_bad_tcp_target(self) -> None:
        result = CliRunner().invoke(main, ["tools", "list", "nowhere", "--transport", "tcp"])
        assert result.exit_code == 1
        assert "host:port" in result.output


class TestToolsCall:
    def test_call_prints_envelope(self) -> None:
        envelope = CallToolResult.from_json({"count": 42})
        with patch("mcpbridge.protocols.mcp.client.MCPClient") as mock_client_cls:
            mock_instance = _mock_client(mock_client_cls)
            mock_instance.call_tool = AsyncMock(return_value=envelope)

            result = CliRunner().invoke(
                main,
                [
                    "tools",
                    "call",
                    "http://127.0.0.1:8005/mcp",
                    "get_star_count",
                    "--transport",
                    "http",
                    "--args",
                    '{"owner": "o", "repo": "r"}',
                ],
            )

        assert result.exit_code == 0
        assert json.loads(result.output) == envelope.to_wire()
        mock_instance.call_tool.assert_awaited_once_with("get_star_count", {"owner": "o", "repo": "r"})

    def test_invalid_args_json(self) -> None:
        result = CliRunner().invoke(main, ["tools", "call", "cmd", "t", "--args", "{nope"])
        assert result.exit_code == 2
        assert "Invalid --args" in result.output

    def test_args_must_be_object(self) -> None:
        result = CliRunner().invoke(main, ["tools", "call", "cmd", "t", "--args", "[1, 2]"])
        assert result.exit_code == 2
        assert "expected a JSON object" in result.output

    def test_call_error(self) -> None:
        with patch("mcpbridge.protocols.mcp.client.MCPClient") as mock_client_cls:
            mock_instance = _mock_client(mock_client_cls)
            mock_instance.call_tool = AsyncMock(
                side_effect=ToolExecutionError("t", "Tool not found: t")
            )

            result = CliRunner().invoke(main, ["tools", "call", "cmd", "t"])

        assert result.exit_code == 1
        assert "Call error" in result.output
        assert "Tool not found: t" in result.output
