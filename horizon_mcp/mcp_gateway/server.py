"""Open Horizon MCP server - HTTP application and entry point."""

import argparse
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from horizon_mcp.clients.exchange import ExchangeClient
from horizon_mcp.core.config import ServerConfig
from horizon_mcp.mcp_gateway.constants import (
    HEALTH_PATH,
    INTERNAL_ERROR,
    MCP_PATH,
    PARSE_ERROR,
    SERVER_NAME,
    SERVER_VERSION,
)
from horizon_mcp.mcp_gateway.protocol import ExchangeProtocolHandler, jsonrpc_error
from horizon_mcp.mcp_gateway.router import RequestRouter
from horizon_mcp.mcp_gateway.session import SessionRegistry
from horizon_mcp.mcp_gateway.tools.exchange_tools import ExchangeTools
from horizon_mcp.mcp_gateway.transport import TransportResponse

_server_log = logging.getLogger("horizon_mcp.mcp_gateway.server")


def _to_http_response(response: TransportResponse) -> Response:
    if response.body is None:
        return Response(status_code=response.status_code, headers=response.headers)
    if isinstance(response.body, str):
        return PlainTextResponse(
            response.body, status_code=response.status_code, headers=response.headers
        )
    return JSONResponse(response.body, status_code=response.status_code, headers=response.headers)


def create_app(
    config: ServerConfig | None = None,
    registry: SessionRegistry | None = None,
    client: ExchangeClient | None = None,
) -> FastAPI:
    """Build the FastAPI app with its own session registry.

    Each app owns (or is handed) one ``SessionRegistry``; it is closed when
    the app shuts down.
    """
    config = config or ServerConfig.from_env()
    registry = registry if registry is not None else SessionRegistry()
    client = client or ExchangeClient.from_config(config)

    def handler_factory(initial_headers: Any) -> ExchangeProtocolHandler:
        return ExchangeProtocolHandler(ExchangeTools(client), initial_headers=initial_headers)

    router = RequestRouter(
        registry,
        handler_factory,
        idle_timeout=config.session_idle_timeout,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        _server_log.info("shutdown sessions=%s", len(registry))
        registry.close()

    app = FastAPI(
        title="Open Horizon MCP Server",
        version=SERVER_VERSION,
        debug=config.debug,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.registry = registry
    app.state.router = router
    app.state.client = client

    if not config.debug:

        @app.exception_handler(Exception)
        async def unexpected_error(request: Request, error: Exception) -> JSONResponse:
            _server_log.exception(
                "unexpected_error method=%s path=%s",
                request.method,
                request.url.path,
                extra={"method": request.method, "path": request.url.path},
            )
            return JSONResponse(
                jsonrpc_error(None, INTERNAL_ERROR, "Internal server error"), status_code=500
            )

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Response:
        _server_log.debug("> %s %s", request.method, request.url.path)
        return await call_next(request)

    @app.get(HEALTH_PATH)
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "service": SERVER_NAME, "sessions": len(registry)}

    @app.post(MCP_PATH)
    async def mcp_post(request: Request) -> Response:
        """Primary MCP endpoint: session initiation and bound-session messages."""
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(
                jsonrpc_error(None, PARSE_ERROR, "Parse error: Invalid JSON"), status_code=400
            )
        response = await router.handle_post(request.headers, body)
        return _to_http_response(response)

    @app.get(MCP_PATH)
    async def mcp_get(request: Request) -> Response:
        """Server-to-client events for an existing session."""
        return _to_http_response(await router.handle_session_request("GET", request.headers))

    @app.delete(MCP_PATH)
    async def mcp_delete(request: Request) -> Response:
        """Session termination."""
        return _to_http_response(await router.handle_session_request("DELETE", request.headers))

    return app


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Open Horizon MCP Server")
    parser.add_argument("--host", help="HTTP server host (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="HTTP server port (default: PORT or 3000)")
    parser.add_argument("--exchange-url", help="Exchange API base URL (or set EXCHANGE_URL)")
    parser.add_argument("--exchange-org", help="Exchange organization (or set EXCHANGE_ORG)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (or set LOG_LEVEL)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Run the MCP server over HTTP."""
    args = _parse_args(argv)
    config = ServerConfig.from_env()
    overrides = {
        "host": args.host,
        "port": args.port,
        "exchange_url": args.exchange_url.rstrip("/") if args.exchange_url else None,
        "exchange_org": args.exchange_org,
        "log_level": args.log_level,
    }
    config = replace(config, **{key: value for key, value in overrides.items() if value is not None})

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if not config.exchange_url or not config.exchange_org:
        print(
            "ERROR: EXCHANGE_URL and EXCHANGE_ORG must be set (environment, .env or flags).",
            file=sys.stderr,
        )
        sys.exit(1)
    if not config.exchange_credential:
        _server_log.warning("EXCHANGE_CREDENTIAL is not set; Exchange requests are unauthenticated")

    _server_log.info(
        "starting host=%s port=%s exchange_url=%s org=%s",
        config.host,
        config.port,
        config.exchange_url,
        config.exchange_org,
    )
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
