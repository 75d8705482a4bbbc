"""``mcpbridge serve`` — run a bridge server on the selected transport."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from mcpbridge.cli_commands._output import err_console
from mcpbridge.services import SERVICES


@click.command()
@click.argument("service", type=click.Choice(sorted(SERVICES)), required=False)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML settings file.",
)
@click.option(
    "--transport",
    type=click.Choice(["stdio", "tcp", "http"]),
    default=None,
    help="Transport binding (default: stdio).",
)
@click.option("--host", default=None, help="Bind address for tcp/http.")
@click.option("--port", type=int, default=None, help="Bind port for tcp/http.")
@click.option("--base-url", envvar="MCPBRIDGE_BASE_URL", default=None, help="Downstream base URL.")
@click.option("--api-key", envvar="MCPBRIDGE_API_KEY", default=None, help="Downstream API key.")
@click.option("--username", default=None, help="Downstream username (digest auth).")
@click.option("--password", envvar="MCPBRIDGE_PASSWORD", default=None, help="Downstream password.")
@click.option("--timeout", type=float, default=None, help="Downstream call timeout in seconds.")
@click.option("--telemetry", is_flag=True, help="Enable OpenTelemetry tracing.")
@click.option(
    "--otlp-endpoint",
    envvar="OTEL_EXPORTER_OTLP_ENDPOINT",
    default=None,
    help="OTLP collector for --telemetry (default: print spans to stdout).",
)
def serve(
    service: str | None,
    config_path: str | None,
    transport: str | None,
    host: str | None,
    port: int | None,
    base_url: str | None,
    api_key: str | None,
    username: str | None,
    password: str | None,
    timeout: float | None,
    telemetry: bool,
    otlp_endpoint: str | None,
) -> None:
    """Serve the tools of SERVICE over MCP.

    SERVICE may be omitted when the settings file names one.
    """
    from mcpbridge.core.settings import SettingsError, SettingsLoader, build_settings
    from mcpbridge.protocols.mcp.bindings import create_binding
    from mcpbridge.services import create_server

    overrides = {
        "service": service,
        "transport": transport,
        "host": host,
        "port": port,
        "base_url": base_url,
        "api_key": api_key,
        "username": username,
        "password": password,
        "timeout": timeout,
    }
    try:
        if config_path is not None:
            settings = SettingsLoader(Path(config_path)).load(**overrides)
        else:
            settings = build_settings({}, **overrides)
        server = create_server(settings)
    except (SettingsError, ValueError) as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    if telemetry or (settings.telemetry is not None and settings.telemetry.enabled):
        from mcpbridge.utils.telemetry import configure_telemetry

        endpoint = otlp_endpoint or (settings.telemetry.otlp_endpoint if settings.telemetry else None)
        # Console spans go to stdout, which is the stdio protocol channel.
        if endpoint is None and settings.transport == "stdio":
            err_console.print(
                "[red]Telemetry error:[/red] the stdio transport needs --otlp-endpoint"
            )
            sys.exit(1)
        try:
            configure_telemetry(
                service_name=server.name,
                export_to_console=endpoint is None,
                otlp_endpoint=endpoint,
            )
        except ImportError as exc:
            err_console.print(f"[red]Telemetry error:[/red] {exc}")
            sys.exit(1)

    binding = create_binding(
        settings.transport,
        server,
        host=settings.host,
        port=settings.port,
        path=settings.path,
    )

    try:
        asyncio.run(binding.serve())
    except KeyboardInterrupt:
        err_console.print("Shutting down")
