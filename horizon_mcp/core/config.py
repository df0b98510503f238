"""Runtime configuration for the Open Horizon MCP server."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_PORT = 3000
DEFAULT_REQUEST_TIMEOUT = 30.0

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class ServerConfig:
    """Read-only inputs for the Exchange client and the HTTP server."""

    exchange_url: str = ""
    exchange_org: str = ""
    exchange_credential: str | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    session_idle_timeout: float | None = None
    log_level: str = "INFO"
    debug: bool = False

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "ServerConfig":
        """Build a config from environment variables (and ``.env`` when present)."""
        if dotenv:
            load_dotenv()
        timeout = _env_float("EXCHANGE_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)
        return cls(
            exchange_url=os.getenv("EXCHANGE_URL", "").rstrip("/"),
            exchange_org=os.getenv("EXCHANGE_ORG", ""),
            exchange_credential=os.getenv("EXCHANGE_CREDENTIAL") or None,
            request_timeout=timeout if timeout is not None else DEFAULT_REQUEST_TIMEOUT,
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", DEFAULT_PORT),
            session_idle_timeout=_env_float("MCP_SESSION_IDLE_TIMEOUT", None),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            debug=os.getenv("HORIZON_MCP_DEBUG", "").strip().lower() in _TRUE_VALUES,
        )
