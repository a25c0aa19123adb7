import time
from dataclasses import dataclass
from typing import Callable, Protocol

from sqlalchemy.orm import Session

from admission.errors import Unauthorized
from admission.models.session import CandidateSession


@dataclass
class SessionData:
    candidate_id: int
    expires_at: float  # epoch seconds


class SessionStore(Protocol):
    def put(self, token: str, candidate_id: int, ttl_seconds: int) -> None: ...

    def get(self, token: str) -> SessionData | None: ...

    def delete(self, token: str) -> None: ...


class InMemorySessionStore:
    """Process-local map of token -> session. Lost on restart."""

    def __init__(self):
        self._sessions: dict[str, SessionData] = {}

    def put(self, token: str, candidate_id: int, ttl_seconds: int) -> None:
        self._sessions[token] = SessionData(candidate_id, time.time() + ttl_seconds)

    def get(self, token: str) -> SessionData | None:
        return self._sessions.get(token)

    def delete(self, token: str) -> None:
        self._sessions.pop(token, None)

    def clear(self) -> None:
        self._sessions.clear()


class DatabaseSessionStore:
    """Sessions kept in ``candidate_sessions`` so they survive restarts and are shared."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def put(self, token: str, candidate_id: int, ttl_seconds: int) -> None:
        with self._session_factory() as db:
            db.merge(CandidateSession(
                token=token,
                candidate_id=candidate_id,
                expires_at=time.time() + ttl_seconds,
            ))
            db.commit()

    def get(self, token: str) -> SessionData | None:
        with self._session_factory() as db:
            row = db.get(CandidateSession, token)
            if row is None:
                return None
            return SessionData(row.candidate_id, row.expires_at)

    def delete(self, token: str) -> None:
        with self._session_factory() as db:
            row = db.get(CandidateSession, token)
            if row is not None:
                db.delete(row)
                db.commit()


def resolve_session(store: SessionStore, token: str | None) -> int:
    if not token:
        raise Unauthorized("Token não fornecido")
    data = store.get(token)
    if data is None:
        raise Unauthorized("Sessão inválida")
    if data.expires_at <= time.time():
        store.delete(token)
        raise Unauthorized("Sessão expirada")
    return data.candidate_id
