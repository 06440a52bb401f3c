"""Approver candidates for the request form"""
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from oeapp.api.deps import CurrentUser, get_current_user
from oeapp.database import get_db
from oeapp.schemas.approver import ApproverCandidate
from oeapp.services.resolver import ApproverResolver

router = APIRouter(prefix="/approvers", tags=["approvers"])


@router.get("", response_model=List[ApproverCandidate])
def list_candidates(
    role: str = Query(..., min_length=1, description="Role id, e.g. AreaManager"),
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(get_current_user),
):
    """Active people who can hold ``role``, for the per-role dropdown"""
    return ApproverResolver(db).candidates(role)
