"""mcpbridge CLI entrypoint."""

from __future__ import annotations

import click

from mcpbridge import __version__
from mcpbridge.utils.log import LOG_LEVELS, configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="mcpbridge")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    default="info",
    envvar="MCPBRIDGE_LOG_LEVEL",
    help="Log level (logs go to stderr).",
)
def main(log_level: str) -> None:
    """mcpbridge — MCP servers and clients for downstream HTTP services."""
    configure_logging(log_level)


# Register subcommands
from mcpbridge.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
