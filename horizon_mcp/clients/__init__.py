"""Clients for remote APIs."""

from horizon_mcp.clients.exchange import ExchangeClient

__all__ = ["ExchangeClient"]
