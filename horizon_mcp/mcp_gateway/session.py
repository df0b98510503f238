"""Session registry for the Open Horizon MCP gateway."""

import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from horizon_mcp.mcp_gateway.protocol import ExchangeProtocolHandler
    from horizon_mcp.mcp_gateway.transport import SessionTransport

_session_log = logging.getLogger("horizon_mcp.mcp_gateway.session")


@dataclass(frozen=True)
class Session:
    """A client-visible id bound to its protocol handler and transport."""

    session_id: str
    handler: "ExchangeProtocolHandler"
    transport: "SessionTransport"
    initial_headers: Mapping[str, str] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)


class SessionRegistry:
    """Thread-safe table of live sessions keyed by session id.

    ``register`` is single-assignment: the first session stored for an id
    wins, and later registrations for the same id get the stored session
    back. Sessions are removed when their transport closes, when
    ``close_expired`` finds them idle, or when the registry itself is closed.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._closed = False

    def lookup(self, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def register(self, session: Session) -> Session:
        """Store ``session`` unless its id is already bound; return the stored one."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Session registry is closed")
            existing = self._sessions.get(session.session_id)
            if existing is not None:
                if existing.transport is not session.transport:
                    raise RuntimeError(
                        f"Session id {session.session_id} is already bound to another transport"
                    )
                return existing
            self._sessions[session.session_id] = session
        _session_log.info(
            "session_registered session_id=%s",
            session.session_id,
            extra={"session_id": session.session_id},
        )
        return session

    def create(
        self,
        session_id: str,
        handler: "ExchangeProtocolHandler",
        transport: "SessionTransport",
        initial_headers: Mapping[str, str] | None = None,
    ) -> Session:
        return self.register(
            Session(
                session_id=session_id,
                handler=handler,
                transport=transport,
                initial_headers=dict(initial_headers or {}),
            )
        )

    def remove(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is None:
            return False
        _session_log.info(
            "session_removed session_id=%s",
            session_id,
            extra={"session_id": session_id},
        )
        return True

    def close_expired(self) -> int:
        """Close and drop every session whose transport has idled past its timeout."""
        with self._lock:
            sessions = list(self._sessions.values())
        expired = [session for session in sessions if session.transport.is_expired()]
        for session in expired:
            session.transport.close()
            self.remove(session.session_id)
        if expired:
            _session_log.info("sessions_expired count=%s", len(expired), extra={"count": len(expired)})
        return len(expired)

    def session_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def close(self) -> None:
        """Close every transport and refuse further registrations."""
        with self._lock:
            self._closed = True
            sessions = list(self._sessions.values())
        for session in sessions:
            # Transport close callbacks call back into remove().
            session.transport.close()
        with self._lock:
            self._sessions.clear()
