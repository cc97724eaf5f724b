from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Union


def _now(now: float | None) -> int:
    return int(time.time() if now is None else now)


@dataclass(frozen=True)
class PendingSession:
    """A flow that has been started but not yet confirmed by the provider."""

    temporary_token: str
    origin_uri: str
    expires_at: int
    state: str = ""

    @classmethod
    def create(
        cls,
        origin_uri: str,
        lifetime_seconds: int,
        *,
        state: str = "",
        temporary_token: str | None = None,
        now: float | None = None,
    ) -> "PendingSession":
        return cls(
            temporary_token=temporary_token or secrets.token_urlsafe(32),
            origin_uri=origin_uri,
            expires_at=_now(now) + lifetime_seconds,
            state=state,
        )

    @property
    def identity_token(self) -> str:
        return self.temporary_token

    def is_authenticated(self) -> bool:
        return False

    def is_expired(self, now: float | None = None) -> bool:
        return _now(now) >= self.expires_at

    def __lt__(self, other: "Session") -> bool:
        return session_sort_key(self) < session_sort_key(other)


@dataclass(frozen=True)
class CompletedSession:
    """A session whose user identity was confirmed by the provider."""

    internal_token: str
    access_token: str
    user_identifier: str
    origin_uri: str
    expires_at: int

    @classmethod
    def create(
        cls,
        *,
        internal_token: str,
        access_token: str,
        user_identifier: str,
        origin_uri: str,
        expires_in: int,
        now: float | None = None,
    ) -> "CompletedSession":
        return cls(
            internal_token=internal_token,
            access_token=access_token,
            user_identifier=user_identifier,
            origin_uri=origin_uri,
            expires_at=_now(now) + expires_in,
        )

    @property
    def identity_token(self) -> str:
        return self.internal_token

    def is_authenticated(self) -> bool:
        return True

    def is_expired(self, now: float | None = None) -> bool:
        return _now(now) >= self.expires_at

    def __lt__(self, other: "Session") -> bool:
        return session_sort_key(self) < session_sort_key(other)


Session = Union[PendingSession, CompletedSession]


def session_sort_key(session: Session) -> tuple[int, str]:
    # Completed sessions sort ahead of every pending one.
    if isinstance(session, CompletedSession):
        return (0, session.internal_token)
    if isinstance(session, PendingSession):
        return (1, session.temporary_token)
    raise TypeError(f"Not a session: {session!r}")


def compare_sessions(first: Session, second: Session) -> int:
    left = session_sort_key(first)
    right = session_sort_key(second)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0
