"""ApprovalRule model"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from oeapp.database import Base


class ApprovalRule(Base):
    """ApprovalRule model - a skip/add rule applied to the base approval chain.

    Rules are evaluated in ``(priority, id)`` order. When the table has no rows
    at all the built-in defaults from ``oeapp.services.rule_engine`` apply.
    """

    __tablename__ = "approval_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    trigger_field = Column(String(50), nullable=False, default="category")   # category | store | <context key>
    trigger_operator = Column(String(20), nullable=False)                    # equals | contains
    trigger_value = Column(String(255), nullable=False)
    action_type = Column(String(10), nullable=False)                         # skip | add
    target_approver = Column(String(50), nullable=False)
    priority = Column(Integer, nullable=False, default=100, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
