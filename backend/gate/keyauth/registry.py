"""Thread-safe per-session authentication state."""

import threading
import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Session:
    """A connected client as seen by the gate.

    ``join_time`` is a ``time.monotonic()`` reading used only for latency.
    A privileged session (operator) is always treated as authenticated and
    holds every permission.
    """

    session_id: str
    join_time: float
    name: str = ""
    privileged: bool = False
    permissions: frozenset[str] = field(default_factory=frozenset)

    def has_permission(self, permission: str) -> bool:
        return self.privileged or permission in self.permissions


class SessionRegistry:
    """Connected sessions plus the set of those that have authenticated.

    Every operation runs under one lock, so readers never see a session
    half-registered or the authenticated set half-cleared. The authenticated
    set is kept a subset of the connected sessions.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}  # session_id -> Session
        self._authenticated: set[str] = set()
        self._lock = threading.RLock()

    def on_connect(
        self,
        session_id: str,
        *,
        privileged: bool = False,
        name: str = "",
        permissions: frozenset[str] = frozenset(),
        join_time: float | None = None,
    ) -> Session:
        """Register a session as joined now and unauthenticated (overwrites a duplicate id)."""
        session = Session(
            session_id=session_id,
            join_time=time.monotonic() if join_time is None else join_time,
            name=name,
            privileged=privileged,
            permissions=permissions,
        )
        with self._lock:
            self._sessions[session_id] = session
            self._authenticated.discard(session_id)
        return session

    def on_disconnect(self, session_id: str) -> Session | None:
        """Remove all state for a session. Return the removed session, if any."""
        with self._lock:
            self._authenticated.discard(session_id)
            return self._sessions.pop(session_id, None)

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def is_connected(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def is_authenticated(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.privileged:
                return True
            return session_id in self._authenticated

    def mark_authenticated(self, session_id: str) -> bool:
        """Add a connected session to the authenticated set.

        Returns False for unknown sessions; marking twice is a no-op.
        Privileged sessions are always authenticated and never join the set,
        so a rotation cannot revoke them.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if not session.privileged:
                self._authenticated.add(session_id)
            return True

    def invalidate_all_non_privileged(self) -> list[str]:
        """Clear the authenticated set and return the ids that lost authentication."""
        with self._lock:
            revoked = sorted(self._authenticated)
            self._authenticated.clear()
            return revoked

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    @property
    def connected_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    @property
    def authenticated_count(self) -> int:
        """Sessions that may act: authenticated plus privileged."""
        with self._lock:
            privileged = {sid for sid, s in self._sessions.items() if s.privileged}
            return len(self._authenticated | privileged)
