"""``mcpbridge tools`` — list and call tools of a running (or spawned) server."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import click

from mcpbridge.cli_commands._output import (
    console,
    err_console,
    print_result,
    print_tools_json,
    print_tools_table,
)

_TRANSPORT_OPTION = click.option(
    "--transport",
    type=click.Choice(["stdio", "tcp", "http"]),
    default="stdio",
    help="MCP server transport type.",
)


@click.group()
def tools() -> None:
    """List and call tools."""


@tools.command("list")
@click.argument("target")
@_TRANSPORT_OPTION
@click.option("--json", "as_json", is_flag=True, help="Print descriptors as JSON.")
def list_tools(target: str, transport: str, as_json: bool) -> None:
    """List the tools of an MCP server.

    TARGET is the command (stdio), host:port (tcp) or URL (http) of the server.
    """
    from mcpbridge.core.settings import ServerRef
    from mcpbridge.protocols.mcp.client import MCPClient

    async def _list() -> list[Any]:
        ref = ServerRef.parse_target(target, transport)  # type: ignore[arg-type]
        async with MCPClient(ref) as client:
            return await client.list_tools()

    try:
        descriptors = asyncio.run(_list())
    except Exception as exc:
        err_console.print(f"[red]Discovery error:[/red] {exc}")
        sys.exit(1)

    if not descriptors:
        console.print("[yellow]No tools available.[/yellow]")
        return

    if as_json:
        print_tools_json(descriptors)
    else:
        print_tools_table(descriptors)


@tools.command("call")
@click.argument("target")
@click.argument("tool")
@_TRANSPORT_OPTION
@click.option(
    "--args",
    "raw_args",
    default="{}",
    help="Tool arguments as a JSON object.",
)
def call_tool(target: str, tool: str, transport: str, raw_args: str) -> None:
    """Call TOOL on an MCP server and print the result envelope.

    TARGET is the command (stdio), host:port (tcp) or URL (http) of the server.
    """
    from mcpbridge.core.settings import ServerRef
    from mcpbridge.protocols.mcp.client import MCPClient

    try:
        arguments = json.loads(raw_args)
    except json.JSONDecodeError as exc:
        err_console.print(f"[red]Invalid --args:[/red] {exc}")
        sys.exit(2)
    if not isinstance(arguments, dict):
        err_console.print("[red]Invalid --args:[/red] expected a JSON object")
        sys.exit(2)

    async def _call() -> Any:
        ref = ServerRef.parse_target(target, transport)  # type: ignore[arg-type]
        async with MCPClient(ref) as client:
            return await client.call_tool(tool, arguments)

    try:
        result = asyncio.run(_call())
    except Exception as exc:
        err_console.print(f"[red]Call error:[/red] {exc}")
        sys.exit(1)

    print_result(result)
