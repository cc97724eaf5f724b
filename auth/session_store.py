from __future__ import annotations

import bisect
import time
from abc import ABC, abstractmethod

from auth.models import PendingSession, Session, session_sort_key


class SessionStore(ABC):
    """Where the host keeps pending and completed sessions between requests.

    Keys are identity tokens: the temporary token while a session is pending,
    the internal token once it is completed.
    """

    @abstractmethod
    async def add(self, session: Session) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, token: str) -> Session | None:
        raise NotImplementedError

    @abstractmethod
    async def pop_pending(self, temporary_token: str) -> PendingSession | None:
        raise NotImplementedError

    @abstractmethod
    async def remove(self, token: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def sweep_expired(self, now: float | None = None) -> int:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """Process-local store; sessions do not survive a restart.

    Sessions are held in ascending :func:`session_sort_key` order, so every
    completed session precedes every pending one. Methods never await, so under
    a single event loop each call is atomic.
    """

    def __init__(self) -> None:
        self._sessions: list[Session] = []
        self._by_token: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def sessions(self) -> list[Session]:
        return list(self._sessions)

    async def add(self, session: Session) -> None:
        self._discard(session.identity_token)
        bisect.insort(self._sessions, session, key=session_sort_key)
        self._by_token[session.identity_token] = session

    async def get(self, token: str) -> Session | None:
        return self._by_token.get(token)

    async def pop_pending(self, temporary_token: str) -> PendingSession | None:
        session = self._by_token.get(temporary_token)
        if not isinstance(session, PendingSession):
            return None
        self._discard(temporary_token)
        return session

    async def remove(self, token: str) -> None:
        self._discard(token)

    async def sweep_expired(self, now: float | None = None) -> int:
        current = time.time() if now is None else now
        kept: list[Session] = []
        for session in self._sessions:
            if session.is_expired(current):
                del self._by_token[session.identity_token]
            else:
                kept.append(session)

        removed = len(self._sessions) - len(kept)
        self._sessions = kept
        return removed

    def _discard(self, token: str) -> None:
        session = self._by_token.pop(token, None)
        if session is None:
            return
        key = session_sort_key(session)
        index = bisect.bisect_left(self._sessions, key, key=session_sort_key)
        del self._sessions[index]
