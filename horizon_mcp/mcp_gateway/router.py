"""Routes inbound MCP HTTP requests to their session transports."""

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from horizon_mcp.mcp_gateway.constants import NO_VALID_SESSION, SESSION_HEADER
from horizon_mcp.mcp_gateway.protocol import (
    ExchangeProtocolHandler,
    is_initialize_request,
    jsonrpc_error,
)
from horizon_mcp.mcp_gateway.session import Session, SessionRegistry
from horizon_mcp.mcp_gateway.transport import SessionTransport, TransportResponse, header_value

_router_log = logging.getLogger("horizon_mcp.mcp_gateway.router")

HandlerFactory = Callable[[Mapping[str, str]], ExchangeProtocolHandler]

NO_VALID_SESSION_MESSAGE = "Bad Request: No valid session ID provided"


def new_session_id() -> str:
    """Unpredictable, collision-resistant session id (uuid4 draws from os.urandom)."""
    return str(uuid.uuid4())


class RequestRouter:
    """Binds each inbound request to a session, creating one on ``initialize``.

    * known session id: forward to the bound transport and pass its response through;
    * no session id and an ``initialize`` body: create, register, then forward;
    * anything else: reject with JSON-RPC ``-32000`` and leave the registry untouched.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        handler_factory: HandlerFactory,
        idle_timeout: float | None = None,
        session_id_factory: Callable[[], str] = new_session_id,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.handler_factory = handler_factory
        self.idle_timeout = idle_timeout
        self.session_id_factory = session_id_factory
        self.clock = clock

    async def handle_post(self, headers: Mapping[str, str], body: Any) -> TransportResponse:
        session_id = header_value(headers, SESSION_HEADER)
        session = self.registry.lookup(session_id)

        if session is None:
            if session_id is not None or not is_initialize_request(body):
                _router_log.info(
                    "request_rejected session_id=%s reason=%s",
                    session_id or "(none)",
                    "unknown_session" if session_id else "bad_initiation",
                    extra={"session_id": session_id},
                )
                return self.reject()
            session = self._initiate(headers)
            response = await session.transport.handle_request("POST", headers, body)
            if not session.transport.initialized:
                # The transport refused the initialize request; drop the half-open session.
                self.registry.remove(session.session_id)
                session.transport.close()
            return response

        return await session.transport.handle_request("POST", headers, body)

    async def handle_session_request(
        self, method: str, headers: Mapping[str, str]
    ) -> TransportResponse:
        """GET (event stream) and DELETE (termination) for an existing session."""
        session_id = header_value(headers, SESSION_HEADER)
        if session_id is None:
            return TransportResponse(
                status_code=405, body="Method Not Allowed", headers={"Allow": "POST"}
            )
        session = self.registry.lookup(session_id)
        if session is None:
            return TransportResponse(status_code=400, body="Invalid or missing session ID")
        return await session.transport.handle_request(method, headers)

    @staticmethod
    def reject() -> TransportResponse:
        return TransportResponse(
            status_code=400,
            body=jsonrpc_error(None, NO_VALID_SESSION, NO_VALID_SESSION_MESSAGE),
        )

    def _initiate(self, headers: Mapping[str, str]) -> Session:
        # Reap idle sessions whose clients left without a DELETE.
        self.registry.close_expired()
        session_id = self.session_id_factory()
        initial_headers = dict(headers)
        handler = self.handler_factory(initial_headers)
        transport = SessionTransport(
            session_id_generator=lambda: session_id,
            idle_timeout=self.idle_timeout,
            clock=self.clock,
        )

        def on_session_initialized(sid: str) -> None:
            self.registry.create(sid, handler, transport, initial_headers)

        def on_close() -> None:
            if transport.session_id is not None:
                self.registry.remove(transport.session_id)

        transport.on_session_initialized = on_session_initialized
        transport.on_close = on_close
        handler.connect(transport)

        # Registered here as well as from the ready callback; both converge on one entry.
        session = self.registry.create(session_id, handler, transport, initial_headers)
        _router_log.info(
            "session_created session_id=%s",
            session_id,
            extra={"session_id": session_id},
        )
        return session
