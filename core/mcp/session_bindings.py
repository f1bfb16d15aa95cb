"""
Session binding store: MCP session id -> authenticated principal.

Tool handlers only see a session id; this map is how they learn whose data
they are touching. It is a cache over the database, never a source of
truth: a missing binding simply means "not authenticated".
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from core.principal import ResolvedPrincipal
from models.base import utcnow

logger = logging.getLogger(__name__)


def short_id(session_id: str) -> str:
    """Session ids are logged truncated."""
    return f"{session_id[:8]}..."


@dataclass(frozen=True)
class SessionBinding:
    user_id: str
    is_admin: bool
    bound_at: datetime = field(default_factory=utcnow)


class SessionBindingStore:
    def __init__(self):
        self._bindings: Dict[str, SessionBinding] = {}
        self._lock = threading.Lock()

    def bind(self, session_id: str, principal: ResolvedPrincipal) -> SessionBinding:
        binding = SessionBinding(user_id=principal.user_id, is_admin=principal.is_admin)
        with self._lock:
            self._bindings[session_id] = binding
        logger.info("Bound session %s to user %s", short_id(session_id), principal.user_id)
        return binding

    def get(self, session_id: Optional[str]) -> Optional[SessionBinding]:
        if not session_id:
            return None
        with self._lock:
            return self._bindings.get(session_id)

    def resolve_user_id(self, session_id: Optional[str]) -> Optional[str]:
        binding = self.get(session_id)
        return binding.user_id if binding else None

    def resolve_is_admin(self, session_id: Optional[str]) -> bool:
        binding = self.get(session_id)
        return bool(binding and binding.is_admin)

    def unbind(self, session_id: str) -> bool:
        with self._lock:
            removed = self._bindings.pop(session_id, None)
        if removed:
            logger.info("Unbound session %s", short_id(session_id))
        return removed is not None

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._bindings)
            self._bindings.clear()
        if count:
            logger.info("Cleared %d session bindings", count)
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)
