"""Session store.

Sessions are created by the corporate login collaborator; this service only
reads them. The store is injected through ``app.state`` so tests and other
deployments can swap the backend.
"""
import hashlib
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from oeapp.config import settings
from oeapp.models.user_session import UserSession
from oeapp.utils.permissions import PermissionChecker


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a session token (tokens are never stored raw)."""
    return hashlib.sha256(token.encode()).hexdigest()


@dataclass
class SessionRecord:
    email: str
    display_name: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    permissions: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= datetime.utcnow()

    def checker(self) -> PermissionChecker:
        return PermissionChecker(self.permissions, self.roles)


class SessionStore(ABC):
    """Key → session record"""

    @abstractmethod
    def get(self, token: str) -> Optional[SessionRecord]:
        """Return the live session for ``token`` or None if unknown or expired."""

    @abstractmethod
    def put(self, token: str, record: SessionRecord) -> None:
        ...

    @abstractmethod
    def delete(self, token: str) -> None:
        ...


class InMemorySessionStore(SessionStore):
    """Process-local store, for development and tests"""

    def __init__(self):
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._sessions.get(hash_token(token))
            if record is None:
                return None
            if record.is_expired:
                del self._sessions[hash_token(token)]
                return None
            return record

    def put(self, token: str, record: SessionRecord) -> None:
        if record.expires_at is None:
            record = replace(record, expires_at=datetime.utcnow() + timedelta(seconds=settings.SESSION_TTL_SECONDS))
        with self._lock:
            self._sessions[hash_token(token)] = record

    def delete(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(hash_token(token), None)


class DatabaseSessionStore(SessionStore):
    """Reads sessions from the ``user_sessions`` table"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get(self, token: str) -> Optional[SessionRecord]:
        db = self.session_factory()
        try:
            row = (
                db.query(UserSession)
                .filter(
                    UserSession.token_hash == hash_token(token),
                    UserSession.expires_at > datetime.utcnow(),
                )
                .first()
            )
            if row is None:
                return None
            return SessionRecord(
                email=row.user_email,
                display_name=row.display_name,
                roles=list(row.roles or []),
                permissions=dict(row.permissions or {}),
                access_token=row.access_token,
                expires_at=row.expires_at,
            )
        finally:
            db.close()

    def put(self, token: str, record: SessionRecord) -> None:
        expires_at = record.expires_at or datetime.utcnow() + timedelta(seconds=settings.SESSION_TTL_SECONDS)
        db = self.session_factory()
        try:
            row = db.query(UserSession).filter(UserSession.token_hash == hash_token(token)).first()
            if row is None:
                row = UserSession(token_hash=hash_token(token))
                db.add(row)
            row.user_email = record.email
            row.display_name = record.display_name
            row.roles = list(record.roles)
            row.permissions = dict(record.permissions)
            row.access_token = record.access_token
            row.expires_at = expires_at
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete(self, token: str) -> None:
        db = self.session_factory()
        try:
            db.query(UserSession).filter(UserSession.token_hash == hash_token(token)).delete()
            db.commit()
        finally:
            db.close()
