"""UserSession model for sessions issued by the corporate login collaborator"""
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from oeapp.database import Base


class UserSession(Base):
    """Stores authenticated sessions keyed by the SHA-256 hash of the session token.

    Rows are written by the login flow (outside this service) and read through
    :class:`oeapp.services.sessions.DatabaseSessionStore`. ``permissions`` maps a
    form code to ``{can_view, can_create, can_edit, can_delete}``.
    """

    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    user_email = Column(String(255), nullable=False, index=True)
    display_name = Column(String(255), nullable=True)
    roles = Column(JSON, nullable=False, default=list)
    permissions = Column(JSON, nullable=False, default=dict)
    access_token = Column(Text, nullable=True)   # delegated mail credential, optional
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
