"""
Protocol session registry for the streamable HTTP transport.

A session is created only by an authenticated `initialize` and lives until
the client sends DELETE or the server shuts down. Registration and binding
happen together, as do deregistration and unbinding, so a session that is
reachable always has a principal and a closed one never does.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from core.mcp.session_bindings import SessionBindingStore, short_id
from core.principal import ResolvedPrincipal
from models.base import utcnow

logger = logging.getLogger(__name__)

# Sentinel pushed onto a session's outbound queue to end its keepalive SSE stream
STREAM_CLOSED = None


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class ProtocolSession:
    session_id: str
    user_id: str
    state: SessionState = SessionState.UNINITIALIZED
    protocol_version: Optional[str] = None
    client_info: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    outbound: "asyncio.Queue[Optional[dict]]" = field(default_factory=asyncio.Queue)

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.ACTIVE

    def activate(self) -> None:
        if self.state is SessionState.UNINITIALIZED:
            self.state = SessionState.ACTIVE

    def send(self, message: dict) -> None:
        """
        Queue a server-to-client message for the GET stream.

        No tool currently emits server-initiated messages, so in practice the
        stream only carries keepalives until the session closes.
        """
        if self.is_open:
            self.outbound.put_nowait(message)


class SessionManager:
    def __init__(self, bindings: SessionBindingStore):
        self.bindings = bindings
        self._sessions: Dict[str, ProtocolSession] = {}
        self._lock = threading.Lock()

    def create_session(
        self,
        principal: ResolvedPrincipal,
        protocol_version: Optional[str] = None,
        client_info: Optional[Dict[str, Any]] = None,
    ) -> ProtocolSession:
        session = ProtocolSession(
            session_id=str(uuid4()),
            user_id=principal.user_id,
            protocol_version=protocol_version,
            client_info=client_info or {},
        )
        with self._lock:
            self._sessions[session.session_id] = session
            self.bindings.bind(session.session_id, principal)
            session.activate()
        logger.info("MCP session %s initialized for user %s", short_id(session.session_id), principal.user_id)
        return session

    def get(self, session_id: Optional[str]) -> Optional[ProtocolSession]:
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None or not session.is_open:
            return None
        return session

    def close(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            self.bindings.unbind(session_id)
        if session is None:
            return False

        session.state = SessionState.CLOSED
        session.outbound.put_nowait(STREAM_CLOSED)
        logger.info("MCP session %s closed", short_id(session_id))
        return True

    def close_all(self) -> int:
        """Close every session, then drop any stray bindings."""
        with self._lock:
            session_ids = list(self._sessions)
        closed = sum(1 for session_id in session_ids if self.close(session_id))
        self.bindings.clear_all()
        if closed:
            logger.info("Closed %d MCP sessions", closed)
        return closed

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
