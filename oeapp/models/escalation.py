"""Escalation, action item and in-app notification models"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, text

from oeapp.database import Base

ESCALATION_PENDING = "Pending"
ESCALATION_RESOLVED = "Resolved"

SOURCE_APPROVAL = "approval"
SOURCE_ACTION_ITEM = "action_item"


class ActionItem(Base):
    """ActionItem model - a downstream item (e.g. an inspection action plan) with a deadline"""

    __tablename__ = "action_items"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(50), nullable=False, default="action-plan")
    reference = Column(String(100), nullable=False)        # e.g. inspection document number
    store = Column(String(255), nullable=False, index=True)
    owner_email = Column(String(255), nullable=True)       # store manager responsible for completion
    deadline = Column(DateTime, nullable=False, index=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Escalation(Base):
    """Escalation model - an overdue item raised to a higher authority.

    At most one Pending row may exist per (source, source_id); the partial
    unique index backs the sweep's NOT EXISTS check against concurrent sweeps.
    """

    __tablename__ = "escalations"
    __table_args__ = (
        Index(
            "uq_escalations_open_source",
            "source",
            "source_id",
            unique=True,
            sqlite_where=text("status = 'Pending'"),
            postgresql_where=text("status = 'Pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(30), nullable=False)            # approval | action_item
    source_id = Column(Integer, nullable=False, index=True)
    store = Column(String(255), nullable=True)
    escalated_to_email = Column(String(255), nullable=False)
    escalated_to_name = Column(String(255), nullable=True)
    level = Column(Integer, default=1, nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(20), default=ESCALATION_PENDING, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    resolved_at = Column(DateTime, nullable=True)


class Notification(Base):
    """Notification model - in-app notification shown on the user's dashboard"""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    type = Column(String(50), nullable=False, index=True)   # escalation | action-plan-reminder
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
