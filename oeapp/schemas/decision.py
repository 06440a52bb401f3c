"""Decision endpoint schemas"""
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class DecisionRequest(BaseModel):
    """Schema for an approve/reject decision"""

    action: Literal["approve", "reject"]
    comments: Optional[str] = Field(None, max_length=2000)


class PublicDecisionRequest(DecisionRequest):
    """Decision submitted from an email link; identity is the link's email"""

    email: str = Field(..., min_length=3, max_length=255)
    token: Optional[str] = Field(None, description="Signed link token, when links are signed")


class NextApprover(BaseModel):
    role: str
    name: Optional[str] = None
    email: Optional[str] = None


class PublicNextApprover(BaseModel):
    """Next approver as shown to an email-link caller; no contact details"""

    role: str
    name: Optional[str] = None


class DecisionResponse(BaseModel):
    """Schema for a decision outcome"""

    success: bool = True
    message: str
    status: str
    nextApprover: Optional[NextApprover] = None


class PublicDecisionResponse(DecisionResponse):
    nextApprover: Optional[PublicNextApprover] = None


class PublicStep(BaseModel):
    """A chain step on the email-link page: role and outcome only"""

    role: str
    status: Optional[str] = None
    approvedAt: Optional[datetime] = None


class PublicRequestView(BaseModel):
    """Request context for the email-link page, without any email addresses"""

    id: int
    store: str
    category: str
    third_party: Optional[str] = None
    number_of_agents: Optional[int] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    shift_hours: Optional[int] = None
    created_by_name: Optional[str] = None
    current_step: int
    overall_status: str
    created_at: datetime

    class Config:
        from_attributes = True


class PublicApprovalPage(BaseModel):
    """Data needed to render the email-link approval page"""

    request: PublicRequestView
    approval_chain: List[PublicStep]
    can_decide: bool = Field(..., description="Whether the link's email holds the current step")
    action: Optional[str] = Field(None, description="Action preselected by the link")
