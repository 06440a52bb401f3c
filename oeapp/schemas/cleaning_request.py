"""Extra cleaning request schemas"""
from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class ApproverSelectionIn(BaseModel):
    """Approver picked on the form for one role"""

    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    email: Optional[str] = None


class RequestCreate(BaseModel):
    """Schema for submitting an extra cleaning request"""

    store: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=255, description="e.g. 'Cleaning', 'Helpers'")
    third_party: Optional[str] = Field(None, max_length=255)
    number_of_agents: Optional[int] = Field(None, ge=1)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    shift_hours: Optional[int] = Field(9, ge=1, le=24)
    approvers: Dict[str, ApproverSelectionIn] = Field(
        default_factory=dict,
        description="Selected approver per role, e.g. {\"AreaManager\": {\"id\": 3}}",
    )

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ApprovalStepResponse(BaseModel):
    """One step of the approval chain"""

    role: str
    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    email: Optional[str] = None
    status: Optional[str] = None
    comments: Optional[str] = None
    approvedAt: Optional[datetime] = None


class HistoryResponse(BaseModel):
    """Schema for an approval history entry"""

    step_index: int
    role: str
    approver_email: str
    approver_name: Optional[str] = None
    action: str
    comments: Optional[str] = None
    action_date: datetime

    class Config:
        from_attributes = True


class RequestResponse(BaseModel):
    """Schema for a request row (without chain details)"""

    id: int
    store: str
    category: str
    third_party: Optional[str] = None
    number_of_agents: Optional[int] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    shift_hours: Optional[int] = None
    created_by_email: str
    created_by_name: Optional[str] = None
    current_step: int
    overall_status: Literal["PendingApproval", "FullyApproved", "Rejected"]
    current_approver_email: Optional[str] = None
    current_approver_role: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RequestSnapshot(RequestResponse):
    """Request plus parsed chain and ordered history"""

    approval_chain: List[ApprovalStepResponse] = Field(default_factory=list)
    history: List[HistoryResponse] = Field(default_factory=list)


class RequestListResponse(BaseModel):
    """Schema for a page of requests"""

    items: List[RequestResponse]
    total: int = Field(..., description="Matching requests across all pages")
