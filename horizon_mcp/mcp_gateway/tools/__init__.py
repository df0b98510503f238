"""MCP Gateway tool modules."""

from horizon_mcp.mcp_gateway.tools.exchange_tools import (
    TOOL_NAME,
    TOOL_SPEC,
    Endpoint,
    EndpointCategory,
    ExchangeTools,
    ResourceActionRequest,
    resolve_endpoint,
)

__all__ = [
    "TOOL_NAME",
    "TOOL_SPEC",
    "Endpoint",
    "EndpointCategory",
    "ExchangeTools",
    "ResourceActionRequest",
    "resolve_endpoint",
]
