"""Downstream HTTP adapter shared by all service handlers."""

from mcpbridge.downstream.client import DownstreamClient, join_url

__all__ = ["DownstreamClient", "join_url"]
