"""Tests for MCP client transports (stdio, tcp and streaming HTTP)."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from mcpbridge.protocols.errors import ConnectionError
from mcpbridge.protocols.mcp.transport import (
    MCPTransport,
    StdioTransport,
    StreamableHttpTransport,
    TcpTransport,
)


class TestMCPTransportProtocol:
    def test_stdio_satisfies_protocol(self) -> None:
        assert isinstance(StdioTransport(command="echo test"), MCPTransport)

    def test_tcp_satisfies_protocol(self) -> None:
        assert isinstance(TcpTransport("127.0.0.1", 8005), MCPTransport)

    def test_http_satisfies_protocol(self) -> None:
        assert isinstance(StreamableHttpTransport("http://localhost:8005/mcp"), MCPTransport)


class TestStdioTransport:
    async def test_connect_launches_subprocess(self) -> None:
        mock_proc = AsyncMock()
        mock_proc.stdin = MagicMock()
        mock_proc.stdout = AsyncMock()

        with patch("asyncio.create_subprocess_exec", return_value=mock_proc) as mock_exec:
            transport = StdioTransport(command="mcpbridge serve github --transport stdio")
            await transport.connect()
            mock_exec.assert_awaited_once()
            assert mock_exec.call_args.args == (
                "mcpbridge",
                "serve",
                "github",
                "--transport",
                "stdio",
            )

    async def test_send_writes_json_line(self) -> None:
        mock_proc = AsyncMock()
        mock_stdin = MagicMock()
        mock_stdin.write = MagicMock()
        mock_stdin.drain = AsyncMock()
        mock_proc.stdin = mock_stdin

        transport = StdioTransport(command="echo test")
        transport._process = mock_proc

        data = {"jsonrpc": "2.0", "method": "test"}
        await transport.send(data)

        written = mock_stdin.write.call_args[0][0]
        assert written.endswith(b"\n")
        assert json.loads(written.decode()) == data

    async def test_receive_reads_json_line(self) -> None:
        expected = {"jsonrpc": "2.0", "result": {"ok": True}}
        mock_stdout = AsyncMock()
        mock_stdout.readline = AsyncMock(return_value=(json.dumps(expected) + "\n").encode())

        mock_proc = AsyncMock()
        mock_proc.stdout = mock_stdout

        transport = StdioTransport(command="echo test")
        transport._process = mock_proc

        assert await transport.receive() == expected

    async def test_receive_empty_raises(self) -> None:
        mock_stdout = AsyncMock()
        mock_stdout.readline = AsyncMock(return_value=b"")

        mock_proc = AsyncMock()
        mock_proc.stdout = mock_stdout

        transport = StdioTransport(command="echo test")
        transport._process = mock_proc

        with pytest.raises(RuntimeError, match="closed"):
            await transport.receive()

    async def test_send_without_connect_raises(self) -> None:
        transport = StdioTransport(command="echo test")
        with pytest.raises(RuntimeError, match="not connected"):
            await transport.send({"test": True})

    async def test_close_terminates_process(self) -> None:
        mock_proc = AsyncMock()
        mock_proc.stdin = MagicMock()
        mock_proc.stdin.close = MagicMock()
        mock_proc.terminate = MagicMock()
        mock_proc.wait = AsyncMock()

        transport = StdioTransport(command="echo test")
        transport._process = mock_proc

        await transport.close()
        mock_proc.terminate.assert_called_once()
        assert transport._process is None

    async def test_close_tolerates_exited_process(self) -> None:
        mock_proc = AsyncMock()
        mock_proc.stdin = MagicMock()
        mock_proc.terminate = MagicMock(side_effect=ProcessLookupError)
        mock_proc.wait = AsyncMock()

        transport = StdioTransport(command="echo test")
        transport._process = mock_proc

        await transport.close()
        mock_proc.wait.assert_awaited_once()

    async def test_connect_with_env(self) -> None:
        env = {"MCPBRIDGE_API_KEY": "secret"}
        mock_proc = AsyncMock()

        with patch("asyncio.create_subprocess_exec", return_value=mock_proc) as mock_exec:
            transport = StdioTransport(command="mcpbridge serve kwsearch", env=env)
            await transport.connect()
            assert mock_exec.call_args.kwargs["env"] == env


class TestTcpTransport:
    async def test_round_trip_against_echo_server(self) -> None:
        async def echo(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            line = await reader.readline()
            request = json.loads(line)
            reply = {"jsonrpc": "2.0", "id": request["id"], "result": {"echo": request["method"]}}
            writer.write((json.dumps(reply) + "\n").encode())
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(echo, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        transport = TcpTransport("127.0.0.1", port)
        try:
            await transport.connect()
            await transport.send({"jsonrpc": "2.0", "id": 1, "method": "ping"})
            assert await transport.receive() == {
                "jsonrpc": "2.0",
                "id": 1,
                "result": {"echo": "ping"},
            }
            with pytest.raises(RuntimeError, match="closed"):
                await transport.receive()
        finally:
            await transport.close()
            server.close()
            await server.wait_closed()

    async def test_send_without_connect_raises(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            await TcpTransport("127.0.0.1", 1).send({})

    async def test_receive_without_connect_raises(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            await TcpTransport("127.0.0.1", 1).receive()

    async def test_close_without_connect_is_noop(self) -> None:
        await TcpTransport("127.0.0.1", 1).close()


class TestStreamableHttpTransport:
    async def test_reply_queued_for_receive(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = json.loads(request.content)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {}})

        transport = StreamableHttpTransport(
            "http://bridge.test/mcp",
            headers={"X-Trace": "1"},
            http_transport=httpx.MockTransport(handler),
        )
        await transport.connect()
        try:
            await transport.send({"jsonrpc": "2.0", "id": 5, "method": "ping"})
            assert await transport.receive() == {"jsonrpc": "2.0", "id": 5, "result": {}}
        finally:
            await transport.close()

        assert seen[0].method == "POST"
        assert seen[0].url == "http://bridge.test/mcp"
        assert seen[0].headers["X-Trace"] == "1"
        assert seen[0].headers["Accept"] == "application/json"

    async def test_accepted_notification_queues_nothing(self) -> None:
        transport = StreamableHttpTransport(
            "http://bridge.test/mcp",
            http_transport=httpx.MockTransport(lambda request: httpx.Response(202)),
        )
        await transport.connect()
        try:
            await transport.send({"jsonrpc": "2.0", "method": "notifications/initialized"})
            with pytest.raises(RuntimeError, match="No pending response"):
                await transport.receive()
        finally:
            await transport.close()

    async def test_batch_reply_queues_each_message(self) -> None:
        replies = [
            {"jsonrpc": "2.0", "id": 1, "result": {}},
            {"jsonrpc": "2.0", "id": 2, "result": {}},
        ]
        transport = StreamableHttpTransport(
            "http://bridge.test/mcp",
            http_transport=httpx.MockTransport(lambda request: httpx.Response(200, json=replies)),
        )
        await transport.connect()
        try:
            await transport.send({"jsonrpc": "2.0", "id": 1, "method": "ping"})
            assert (await transport.receive())["id"] == 1
            assert (await transport.receive())["id"] == 2
        finally:
            await transport.close()

    async def test_http_failure_is_connection_error(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = StreamableHttpTransport(
            "http://bridge.test/mcp", http_transport=httpx.MockTransport(refuse)
        )
        await transport.connect()
        try:
            with pytest.raises(ConnectionError, match="connection refused"):
                await transport.send({"jsonrpc": "2.0", "id": 1, "method": "ping"})
        finally:
            await transport.close()

    async def test_non_json_body_is_connection_error(self) -> None:
        transport = StreamableHttpTransport(
            "http://bridge.test/mcp",
            http_transport=httpx.MockTransport(
                lambda request: httpx.Response(500, text="Internal Server Error")
            ),
        )
        await transport.connect()
        try:
            with pytest.raises(ConnectionError, match="HTTP 500"):
                await transport.send({"jsonrpc": "2.0", "id": 1, "method": "ping"})
        finally:
            await transport.close()

    async def test_send_without_connect_raises(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            await StreamableHttpTransport("http://bridge.test/mcp").send({})
