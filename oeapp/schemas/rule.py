"""Approval rule schemas"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class RuleCreate(BaseModel):
    """Schema for creating an approval rule"""

    name: str = Field(..., min_length=1, max_length=255)
    trigger_field: str = Field("category", min_length=1, max_length=50, description="category, store or a context key")
    trigger_operator: Literal["equals", "contains"]
    trigger_value: str = Field(..., min_length=1, max_length=255)
    action_type: Literal["skip", "add"]
    target_approver: str = Field(..., min_length=1, max_length=50, description="Role id, e.g. 'HR'")
    priority: int = Field(100, ge=0)
    is_active: bool = True


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    trigger_field: Optional[str] = Field(None, min_length=1, max_length=50)
    trigger_operator: Optional[Literal["equals", "contains"]] = None
    trigger_value: Optional[str] = Field(None, min_length=1, max_length=255)
    action_type: Optional[Literal["skip", "add"]] = None
    target_approver: Optional[str] = Field(None, min_length=1, max_length=50)
    priority: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class RuleResponse(BaseModel):
    id: int
    name: str
    trigger_field: str
    trigger_operator: str
    trigger_value: str
    action_type: str
    target_approver: str
    priority: int
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ChainPreviewResponse(BaseModel):
    """Roles the active rule set yields for a category and store"""

    category: str
    store: Optional[str] = None
    roles: List[str]
