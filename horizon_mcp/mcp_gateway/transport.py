"""Streamable-HTTP style transport bound to one MCP session."""

import logging
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, cast

from horizon_mcp.mcp_gateway.constants import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    MAX_STREAM_EVENTS,
    NO_VALID_SESSION,
    SESSION_HEADER,
    SESSION_NOT_FOUND,
)
from horizon_mcp.mcp_gateway.protocol import (
    is_initialize_request,
    jsonrpc_error,
)

if TYPE_CHECKING:
    from horizon_mcp.mcp_gateway.protocol import ExchangeProtocolHandler

_transport_log = logging.getLogger("horizon_mcp.mcp_gateway.transport")


@dataclass
class TransportResponse:
    """HTTP response produced by a transport, passed through unmodified by the router."""

    status_code: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)


def _names_initialize(messages: list[Any]) -> bool:
    return any(isinstance(m, dict) and m.get("method") == "initialize" for m in messages)


def header_value(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup that treats empty values as absent."""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return value or None


class SessionTransport:
    """Carries MCP messages between HTTP requests and a protocol handler.

    The session id is assigned from ``session_id_generator`` when the
    ``initialize`` request is handled; ``on_session_initialized`` fires at that
    point. ``on_close`` fires exactly once, whichever way the transport closes
    (DELETE, idle timeout or explicit ``close``).
    """

    def __init__(
        self,
        session_id_generator: Callable[[], str],
        on_session_initialized: Callable[[str], None] | None = None,
        idle_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_id_generator = session_id_generator
        self.on_session_initialized = on_session_initialized
        self.on_close: Callable[[], None] | None = None
        self.idle_timeout = idle_timeout
        self._clock = clock
        self.session_id: str | None = None
        self.handler: "ExchangeProtocolHandler | None" = None
        self.closed = False
        self._last_activity = clock()
        self._events: deque[dict[str, Any]] = deque(maxlen=MAX_STREAM_EVENTS)

    @property
    def initialized(self) -> bool:
        return self.session_id is not None

    def attach(self, handler: "ExchangeProtocolHandler") -> None:
        if self.handler is not None and self.handler is not handler:
            raise RuntimeError("Transport is already bound to a protocol handler")
        self.handler = handler

    def is_expired(self) -> bool:
        if self.idle_timeout is None:
            return False
        return self._clock() - self._last_activity >= self.idle_timeout

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._events.clear()
        _transport_log.info(
            "transport_closed session_id=%s",
            self.session_id or "(none)",
            extra={"session_id": self.session_id},
        )
        if self.on_close is not None:
            self.on_close()

    def push_event(self, event_type: str, payload: dict[str, Any]) -> None:
        self._events.append({"type": event_type, "timestamp": time.time(), "payload": payload})

    def drain_events(self) -> list[dict[str, Any]]:
        events = list(self._events)
        self._events.clear()
        return events

    async def handle_request(
        self,
        method: str,
        headers: Mapping[str, str],
        body: Any = None,
    ) -> TransportResponse:
        """Handle one HTTP request (POST, GET or DELETE) for this session."""
        if self.closed:
            return self._session_gone("Session not found")
        if self.is_expired():
            self.close()
            return self._session_gone("Session expired")
        self._last_activity = self._clock()

        if method == "POST":
            return await self._handle_post(headers, body)
        if method == "GET":
            return self._handle_get(headers)
        if method == "DELETE":
            return self._handle_delete(headers)
        return TransportResponse(
            status_code=405,
            body=jsonrpc_error(None, NO_VALID_SESSION, "Method not allowed."),
            headers={"Allow": "GET, POST, DELETE"},
        )

    def _session_gone(self, message: str) -> TransportResponse:
        return TransportResponse(
            status_code=404, body=jsonrpc_error(None, SESSION_NOT_FOUND, message)
        )

    def _validate_session(self, headers: Mapping[str, str]) -> TransportResponse | None:
        if not self.initialized:
            return TransportResponse(
                status_code=400,
                body=jsonrpc_error(None, NO_VALID_SESSION, "Bad Request: Server not initialized"),
            )
        header_session = header_value(headers, SESSION_HEADER)
        if header_session is None:
            return TransportResponse(
                status_code=400,
                body=jsonrpc_error(
                    None, NO_VALID_SESSION, "Bad Request: Mcp-Session-Id header is required"
                ),
            )
        if header_session != self.session_id:
            return self._session_gone("Session not found")
        return None

    async def _handle_post(self, headers: Mapping[str, str], body: Any) -> TransportResponse:
        if isinstance(body, dict):
            messages = [cast(dict[str, Any], body)]
        elif isinstance(body, list) and body:
            messages = cast(list[Any], body)
        else:
            return TransportResponse(
                status_code=400,
                body=jsonrpc_error(None, INVALID_REQUEST, "Invalid request payload"),
            )

        extra_headers: dict[str, str] = {}
        if self.initialized and _names_initialize(messages):
            return TransportResponse(
                status_code=400,
                body=jsonrpc_error(
                    None, INVALID_REQUEST, "Invalid Request: Server already initialized"
                ),
            )
        if is_initialize_request(body):
            if len(messages) > 1:
                return TransportResponse(
                    status_code=400,
                    body=jsonrpc_error(
                        None,
                        INVALID_REQUEST,
                        "Invalid Request: Only one initialization request is allowed",
                    ),
                )
            self.session_id = self._session_id_generator()
            _transport_log.info(
                "session_initialized session_id=%s",
                self.session_id,
                extra={"session_id": self.session_id},
            )
            if self.on_session_initialized is not None:
                self.on_session_initialized(self.session_id)
        else:
            rejected = self._validate_session(headers)
            if rejected is not None:
                return rejected

        if self.session_id is not None:
            extra_headers[SESSION_HEADER] = self.session_id

        responses: list[dict[str, Any]] = []
        for message in messages:
            response = await self._dispatch(message)
            if response is not None:
                responses.append(response)

        if not responses:
            return TransportResponse(status_code=202, headers=extra_headers)
        payload: Any = responses if isinstance(body, list) else responses[0]
        return TransportResponse(status_code=200, body=payload, headers=extra_headers)

    async def _dispatch(self, message: Any) -> dict[str, Any] | None:
        if not isinstance(message, dict):
            return jsonrpc_error(None, INVALID_REQUEST, "Invalid Request: batch items must be objects")
        message_dict = cast(dict[str, Any], message)
        request_id = message_dict.get("id")
        if message_dict.get("jsonrpc") != "2.0":
            return jsonrpc_error(request_id, INVALID_REQUEST, "Invalid MCP protocol message")
        if self.handler is None:
            return jsonrpc_error(request_id, INTERNAL_ERROR, "Transport is not connected")

        method_name = message_dict.get("method")
        self.push_event("request.received", {"method": method_name, "request_id": request_id})
        try:
            response = await self.handler.handle_message(message_dict)
        except Exception as e:
            _transport_log.exception(
                "message_failed session_id=%s method=%s",
                self.session_id,
                method_name,
                extra={"session_id": self.session_id, "method": method_name},
            )
            self.push_event("request.failed", {"error": str(e), "request_id": request_id})
            return jsonrpc_error(request_id, INTERNAL_ERROR, str(e))

        if response is not None:
            self.push_event(
                "response.ready",
                {
                    "method": method_name,
                    "request_id": request_id,
                    "success": "error" not in response,
                },
            )
        return response

    def _handle_get(self, headers: Mapping[str, str]) -> TransportResponse:
        rejected = self._validate_session(headers)
        if rejected is not None:
            return rejected
        events = self.drain_events()
        if not events:
            events = [{"type": "heartbeat", "timestamp": time.time(), "payload": {"status": "idle"}}]
        return TransportResponse(
            status_code=200,
            body={"jsonrpc": "2.0", "result": {"events": events}},
            headers={SESSION_HEADER: cast(str, self.session_id)},
        )

    def _handle_delete(self, headers: Mapping[str, str]) -> TransportResponse:
        rejected = self._validate_session(headers)
        if rejected is not None:
            return rejected
        self.close()
        return TransportResponse(status_code=200)
