"""Open Horizon MCP Gateway - sessions, routing and the exchange tool."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from horizon_mcp.mcp_gateway.server import create_app


def __getattr__(name: str) -> Any:
    if name == "create_app":
        from horizon_mcp.mcp_gateway.server import create_app

        return create_app
    raise AttributeError(f"module 'horizon_mcp.mcp_gateway' has no attribute '{name}'")


__all__ = ["create_app"]
