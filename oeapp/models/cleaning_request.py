"""Extra cleaning request and approval history models"""
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from oeapp.database import Base

# Overall status values
PENDING_APPROVAL = "PendingApproval"
FULLY_APPROVED = "FullyApproved"
REJECTED = "Rejected"

TERMINAL_STATUSES = (FULLY_APPROVED, REJECTED)


class CleaningRequest(Base):
    """CleaningRequest model - an extra cleaning agents request and its approval chain.

    ``approval_chain`` is the serialized chain; ``current_step``, ``overall_status``
    and the ``current_approver_*`` columns are a denormalized copy kept for queries.
    Both are written only by ``RequestRepository`` in the same statement.
    """

    __tablename__ = "extra_cleaning_requests"

    id = Column(Integer, primary_key=True, index=True)
    store = Column(String(255), nullable=False, index=True)
    category = Column(String(255), nullable=False)
    third_party = Column(String(255), nullable=True)
    number_of_agents = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    shift_hours = Column(Integer, default=9, nullable=True)

    created_by_email = Column(String(255), nullable=False, index=True)
    created_by_name = Column(String(255), nullable=True)

    approval_chain = Column(Text, nullable=False, default="[]")
    current_step = Column(Integer, default=0, nullable=False)
    overall_status = Column(String(30), default=PENDING_APPROVAL, nullable=False, index=True)
    current_approver_email = Column(String(255), nullable=True, index=True)
    current_approver_role = Column(String(50), nullable=True)
    current_step_since = Column(DateTime, default=datetime.utcnow, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    history = relationship(
        "ApprovalHistory",
        back_populates="request",
        order_by="ApprovalHistory.step_index",
    )

    @property
    def is_terminal(self) -> bool:
        return self.overall_status in TERMINAL_STATUSES


class ApprovalHistory(Base):
    """ApprovalHistory model - append-only log of decided steps"""

    __tablename__ = "approval_history"
    __table_args__ = (
        UniqueConstraint("request_id", "step_index", name="uq_approval_history_request_step"),
    )

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("extra_cleaning_requests.id"), nullable=False, index=True)
    step_index = Column(Integer, nullable=False)
    role = Column(String(50), nullable=False)
    approver_email = Column(String(255), nullable=False)
    approver_name = Column(String(255), nullable=True)
    action = Column(String(20), nullable=False)  # Approved | Rejected
    comments = Column(Text, nullable=True)
    action_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    request = relationship("CleaningRequest", back_populates="history")
