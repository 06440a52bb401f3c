"""Escalation and action item endpoints (Admin only)"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from oeapp.api.deps import get_escalation_service, require_admin
from oeapp.database import get_db
from oeapp.middleware.rate_limit import get_rate_limit, limiter
from oeapp.models.escalation import ESCALATION_PENDING, ESCALATION_RESOLVED, ActionItem
from oeapp.schemas.escalation import (
    ActionItemCreate,
    ActionItemResponse,
    EscalationListResponse,
    EscalationResponse,
    EscalationStats,
    SweepResponse,
)
from oeapp.services.escalation import EscalationService

router = APIRouter(tags=["escalations"])


@router.get("/escalations", response_model=EscalationListResponse)
def list_escalations(
    status_filter: Optional[str] = Query(None, alias="status", description="Pending or Resolved"),
    source: Optional[str] = Query(None, description="approval or action_item"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: EscalationService = Depends(get_escalation_service),
    _: str = Depends(require_admin),
):
    if status_filter and status_filter not in (ESCALATION_PENDING, ESCALATION_RESOLVED):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="status must be one of: Pending, Resolved",
        )
    items = service.list(status=status_filter, source=source, limit=limit, offset=offset)
    return EscalationListResponse(
        items=[EscalationResponse.model_validate(e) for e in items],
        total=len(items),
    )


@router.post("/escalations/run", response_model=SweepResponse)
@limiter.limit(get_rate_limit("escalation_run"))
def run_escalations(
    request: Request,
    service: EscalationService = Depends(get_escalation_service),
    _: str = Depends(require_admin),
):
    """
    Run the escalation sweep and deadline reminders now.

    Safe to call at any time; items with a pending escalation are skipped.
    """
    result = service.run_sweep()
    if not result.get("disabled"):
        result.update(service.send_deadline_reminders())
    return SweepResponse(**result)


@router.get("/escalations/stats", response_model=EscalationStats)
def escalation_stats(
    service: EscalationService = Depends(get_escalation_service),
    _: str = Depends(require_admin),
):
    """Escalations created in the last 30 days"""
    return EscalationStats(**service.stats())


@router.post("/escalations/{escalation_id}/resolve", response_model=EscalationResponse)
def resolve_escalation(
    escalation_id: int,
    service: EscalationService = Depends(get_escalation_service),
    _: str = Depends(require_admin),
):
    escalation = service.resolve(escalation_id)
    if escalation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Escalation {escalation_id} not found")
    return escalation


@router.get("/action-items", response_model=List[ActionItemResponse])
def list_action_items(
    open_only: bool = Query(True, description="Only items not yet completed"),
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    query = db.query(ActionItem)
    if open_only:
        query = query.filter(ActionItem.completed_at.is_(None))
    return query.order_by(ActionItem.deadline.asc()).all()


@router.post("/action-items", response_model=ActionItemResponse, status_code=status.HTTP_201_CREATED)
def create_action_item(
    data: ActionItemCreate,
    service: EscalationService = Depends(get_escalation_service),
    _: str = Depends(require_admin),
):
    """Track a downstream item (e.g. an inspection action plan) with a deadline"""
    return service.create_action_item(
        reference=data.reference,
        store=data.store,
        deadline=data.deadline,
        owner_email=data.owner_email,
        source=data.source,
    )


@router.post("/action-items/{item_id}/complete", response_model=ActionItemResponse)
def complete_action_item(
    item_id: int,
    service: EscalationService = Depends(get_escalation_service),
    _: str = Depends(require_admin),
):
    """Mark an action item completed; its pending escalations are resolved"""
    item = service.complete_action_item(item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Action item {item_id} not found")
    return item
