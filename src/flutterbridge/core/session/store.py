"""In-memory session store keyed by session_id."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from flutterbridge.core.session.models import Session


class SessionStore:
    """
    Plain keyed collection of Sessions.

    Holds no policy: limits, validation and teardown belong to
    SessionManager.  Must be used from the event loop thread only.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def set(self, session: Session) -> None:
        self._sessions[session.session_id] = session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def has(self, session_id: str) -> bool:
        return session_id in self._sessions

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def sessions(self) -> Iterator[Session]:
        # Snapshot: callers may delete while iterating
        yield from list(self._sessions.values())

    def keys(self) -> list[str]:
        return list(self._sessions)

    def summaries(self) -> list[dict[str, Any]]:
        return [s.to_summary() for s in self._sessions.values()]

    def clear(self) -> None:
        self._sessions.clear()

    def size(self) -> int:
        return len(self._sessions)
