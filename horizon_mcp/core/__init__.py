"""Core types and configuration."""

from horizon_mcp.core.config import ServerConfig
from horizon_mcp.core.types import (
    Action,
    ErrorCode,
    PolicyType,
    ResourceResponse,
    Target,
    ToolInputError,
)

__all__ = [
    "Action",
    "ErrorCode",
    "PolicyType",
    "ResourceResponse",
    "ServerConfig",
    "Target",
    "ToolInputError",
]
