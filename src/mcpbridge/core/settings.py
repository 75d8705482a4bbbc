"""Settings models and the YAML loader consumed by ``mcpbridge serve``.

Example settings file::

    service: kwsearch
    transport: tcp
    port: 8005
    connection:
      base_url: http://127.0.0.1:12306
      api_key: ${KWSEARCH_API_KEY}
    telemetry:
      enabled: true
      otlp_endpoint: http://localhost:4317
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ValidationError, model_validator

from mcpbridge.core.config import ConnectionConfig

TransportKind = Literal["stdio", "tcp", "http"]


class SettingsError(Exception):
    """Raised when a settings file fails parsing or validation."""


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None


class ServerSettings(BaseModel):
    """Everything needed to start one bridge server."""

    service: str
    transport: TransportKind = "stdio"
    host: str = "127.0.0.1"
    port: int = 8005
    path: str = "/mcp"
    name: str | None = None
    connection: ConnectionConfig | None = None
    telemetry: TelemetrySettings | None = None


class ServerRef(BaseModel):
    """How a client reaches a server: a command to spawn, or an address."""

    name: str = "mcpbridge"
    transport: TransportKind = "stdio"
    command: str | None = None
    env: dict[str, str] | None = None
    host: str | None = None
    port: int | None = None
    url: str | None = None

    @model_validator(mode="after")
    def _check_target(self) -> ServerRef:
        if self.transport == "stdio" and not self.command:
            msg = "stdio server reference requires 'command'"
            raise ValueError(msg)
        if self.transport == "tcp" and (not self.host or self.port is None):
            msg = "tcp server reference requires 'host' and 'port'"
            raise ValueError(msg)
        if self.transport == "http" and not self.url:
            msg = "http server reference requires 'url'"
            raise ValueError(msg)
        return self

    @classmethod
    def parse_target(cls, target: str, transport: TransportKind) -> ServerRef:
        """Build a reference from a CLI target string.

        *target* is a command line for ``stdio``, ``host:port`` for ``tcp``
        and a URL for ``http``.
        """
        if transport == "stdio":
            return cls(transport="stdio", command=target)
        if transport == "tcp":
            host, sep, port = target.rpartition(":")
            if not sep or not port.isdigit():
                msg = f"tcp target must be host:port, got {target!r}"
                raise ValueError(msg)
            return cls(transport="tcp", host=host or "127.0.0.1", port=int(port))
        return cls(transport="http", url=target)


class SettingsLoader:
    """Load and validate a YAML settings file into :class:`ServerSettings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self, **overrides: Any) -> ServerSettings:
        """Read YAML, interpolate env vars, apply *overrides*, and validate.

        ``None`` values in *overrides* are ignored so CLI options that were not
        given leave the file's values alone.

        Raises:
            SettingsError: On read errors, YAML parse errors or validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SettingsError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise SettingsError(f"YAML parse error: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise SettingsError("Settings YAML must be a mapping")

        return build_settings(data, **overrides)


def build_settings(data: dict[str, Any], **overrides: Any) -> ServerSettings:
    """Merge *overrides* into *data* and validate.

    Connection overrides (``base_url``, ``api_key``, ``username``,
    ``password``, ``timeout``) are merged into the ``connection`` mapping.
    """
    merged = dict(data)
    connection = dict(merged.get("connection") or {})
    for key in ("base_url", "api_key", "username", "password", "timeout"):
        value = overrides.pop(key, None)
        if value is not None:
            connection[key] = value
    if connection:
        merged["connection"] = connection
    merged.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return ServerSettings.model_validate(merged)
    except ValidationError as exc:
        raise SettingsError(str(exc)) from exc
