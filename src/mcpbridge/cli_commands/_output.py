"""Shared CLI output formatters."""

from __future__ import annotations

import json

from rich.console import Console
from rich.table import Table

from mcpbridge.protocols.mcp.models import CallToolResult, ToolDescriptor  # noqa: TC001

console = Console()
err_console = Console(stderr=True)


def print_tools_table(tools: list[ToolDescriptor]) -> None:
    """Pretty-print tool descriptors as a table."""
    table = Table(title="Available Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Arguments")

    for tool in tools:
        properties = tool.input_schema.get("properties", {})
        required = set(tool.input_schema.get("required", []))
        args = ", ".join(
            name if name in required else f"[{name}]" for name in properties
        )
        table.add_row(tool.name, _truncate(tool.description), args or "-")

    console.print(table)


def print_tools_json(tools: list[ToolDescriptor]) -> None:
    console.print_json(json.dumps([tool.to_wire() for tool in tools]))


def print_result(result: CallToolResult) -> None:
    """Print a tool-call envelope as JSON."""
    console.print_json(json.dumps(result.to_wire()))


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
