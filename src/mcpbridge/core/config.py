"""Connection configuration and the store handlers read it from.

The store is constructed by the server start-up routine and injected into
every handler through :class:`~mcpbridge.protocols.registry.ToolContext`.
Readers always get a copied snapshot; a reconfiguration swaps the whole value
under the lock, so a reader sees either the old or the new config, never a mix.
"""

from __future__ import annotations

import logging
import threading

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator

from mcpbridge.protocols.errors import ConfigurationMissingError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ConnectionConfig(BaseModel):
    """Where and how to reach the downstream service."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    api_key: SecretStr | None = None
    username: str | None = None
    password: SecretStr | None = None
    timeout: float | None = DEFAULT_TIMEOUT

    @field_validator("base_url")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            msg = "base_url must not be empty"
            raise ValueError(msg)
        return value.strip()

    @property
    def trimmed_base_url(self) -> str:
        return self.base_url.rstrip("/")


class ConnectionConfigStore:
    """Holds the process's :class:`ConnectionConfig` with copy-out reads."""

    def __init__(self, config: ConnectionConfig | None = None) -> None:
        self._lock = threading.Lock()
        self._config = config

    @property
    def is_initialized(self) -> bool:
        with self._lock:
            return self._config is not None

    def initialize(self, config: ConnectionConfig) -> None:
        """Set the configuration; a second call replaces it."""
        with self._lock:
            previous = self._config
            self._config = config.model_copy()
        if previous is None:
            logger.info("Connection config initialized: %s", config.trimmed_base_url)
        else:
            logger.info(
                "Connection config replaced: %s -> %s",
                previous.trimmed_base_url,
                config.trimmed_base_url,
            )

    def get(self) -> ConnectionConfig | None:
        """Return a snapshot of the current config, or ``None`` when unset."""
        with self._lock:
            if self._config is None:
                return None
            return self._config.model_copy()

    def require(self) -> ConnectionConfig:
        """Return a snapshot or raise :class:`ConfigurationMissingError`."""
        config = self.get()
        if config is None:
            logger.error("Connection config not found")
            raise ConfigurationMissingError()
        return config
