"""Escalation and action item schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class EscalationResponse(BaseModel):
    id: int
    source: str
    source_id: int
    store: Optional[str] = None
    escalated_to_email: str
    escalated_to_name: Optional[str] = None
    level: int
    reason: str
    status: str
    created_at: datetime
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EscalationListResponse(BaseModel):
    items: List[EscalationResponse]
    total: int


class SweepResponse(BaseModel):
    """Outcome of one escalation sweep"""

    escalations_created: int
    emails_queued: int
    reminders_sent: int = 0
    disabled: bool = False


class EscalationStats(BaseModel):
    """Escalations created in the last 30 days"""

    pending: int
    resolved: int
    total: int


class ActionItemCreate(BaseModel):
    reference: str = Field(..., min_length=1, max_length=100, description="e.g. inspection document number")
    store: str = Field(..., min_length=1, max_length=255)
    deadline: datetime
    owner_email: Optional[str] = Field(None, max_length=255)
    source: str = Field("action-plan", max_length=50)


class ActionItemResponse(BaseModel):
    id: int
    source: str
    reference: str
    store: str
    owner_email: Optional[str] = None
    deadline: datetime
    completed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
