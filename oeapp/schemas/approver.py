"""Approver directory and store responsible schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ApproverCreate(BaseModel):
    """Schema for adding a person to the approver directory"""

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    roles: List[str] = Field(..., min_length=1, description="Roles this person can hold, e.g. ['AreaManager']")
    is_active: bool = True


class ApproverUpdate(BaseModel):
    """Partial update of a directory entry"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    roles: Optional[List[str]] = None
    is_active: Optional[bool] = None


class ApproverResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    roles: List[str]
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ApproverCandidate(BaseModel):
    """Entry of the per-role approver dropdown"""

    id: int
    name: str
    email: Optional[str] = None

    class Config:
        from_attributes = True


class StoreResponsibleCreate(BaseModel):
    store: str = Field(..., min_length=1, max_length=255)
    area_manager_id: int


class StoreResponsibleResponse(BaseModel):
    id: int
    store: str
    area_manager_id: int
    area_manager_name: Optional[str] = None
    area_manager_email: Optional[str] = None
    is_active: bool
    created_at: datetime
