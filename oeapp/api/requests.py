"""Extra cleaning request endpoints for dashboard users"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from oeapp.api.deps import CurrentUser, get_current_user, get_workflow, require_permission
from oeapp.middleware.rate_limit import get_rate_limit, limiter
from oeapp.models.cleaning_request import PENDING_APPROVAL, TERMINAL_STATUSES, CleaningRequest
from oeapp.schemas.cleaning_request import (
    HistoryResponse,
    RequestCreate,
    RequestListResponse,
    RequestResponse,
    RequestSnapshot,
)
from oeapp.schemas.decision import DecisionRequest, DecisionResponse, NextApprover
from oeapp.services.workflow import ApprovalWorkflow, DecisionResult, decision_message, selections_from_payload
from oeapp.utils.chain import ApprovalChain
from oeapp.utils.permissions import FORM_OP_EXTRA_CLEANING, FORM_STORE_EXTRA_CLEANING

router = APIRouter(prefix="/requests", tags=["requests"])

_VALID_STATUSES = (PENDING_APPROVAL,) + TERMINAL_STATUSES


def to_snapshot(cleaning_request: CleaningRequest, chain: ApprovalChain, history) -> RequestSnapshot:
    """Convert a request, its chain and history to the snapshot schema"""
    base = RequestResponse.model_validate(cleaning_request).model_dump()
    return RequestSnapshot(
        **base,
        approval_chain=chain.to_list(),
        history=[HistoryResponse.model_validate(h) for h in history],
    )


def to_decision_response(result: DecisionResult) -> DecisionResponse:
    next_approver = None
    if result.next_approver_role:
        next_approver = NextApprover(
            role=result.next_approver_role,
            name=result.next_approver_name,
            email=result.next_approver_email,
        )
    return DecisionResponse(
        success=True,
        message=decision_message(result),
        status=result.new_status,
        nextApprover=next_approver,
    )


def _can_view(user: CurrentUser, cleaning_request: CleaningRequest, chain: ApprovalChain) -> bool:
    if user.permissions.can_access(FORM_OP_EXTRA_CLEANING, "view"):
        return True
    email = user.email.strip().lower()
    if (cleaning_request.created_by_email or "").strip().lower() == email:
        return True
    return any(step.is_held_by(email) for step in chain)


@router.post("", response_model=RequestSnapshot, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("submit"))
def submit_request(
    request: Request,
    payload: RequestCreate,
    user: CurrentUser = Depends(require_permission(FORM_STORE_EXTRA_CLEANING, "create")),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """
    Submit an extra cleaning request.

    The approval chain is built from the active rules and the approvers picked
    on the form, and the first approver is notified.
    """
    fields = payload.model_dump(exclude={"approvers"})
    selections = selections_from_payload({
        role: selection.model_dump() for role, selection in payload.approvers.items()
    })
    cleaning_request = workflow.submit(
        fields,
        requester_email=user.email,
        requester_name=user.display_name,
        selections=selections,
        access_token=user.access_token,
    )
    _, chain, history = workflow.snapshot(cleaning_request.id)
    return to_snapshot(cleaning_request, chain, history)


@router.get("", response_model=RequestListResponse)
def list_requests(
    status_filter: Optional[str] = Query(None, alias="status", description="PendingApproval, FullyApproved or Rejected"),
    scope: str = Query("mine", description="mine, pending-mine or all (operations only)"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """
    List requests.

    ``mine`` lists requests the user submitted, ``pending-mine`` those waiting
    on the user's decision, and ``all`` every request (requires operations view).
    """
    if status_filter and status_filter not in _VALID_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"status must be one of: {', '.join(_VALID_STATUSES)}",
        )

    repository = workflow.repository
    if scope == "all":
        if not user.permissions.can_access(FORM_OP_EXTRA_CLEANING, "view"):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"You do not have view access to {FORM_OP_EXTRA_CLEANING}",
            )
        filters = {"status": status_filter}
    elif scope == "pending-mine":
        filters = {"status": PENDING_APPROVAL, "approver_email": user.email}
    elif scope == "mine":
        filters = {"status": status_filter, "created_by": user.email}
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="scope must be one of: mine, pending-mine, all",
        )

    items = repository.list(limit=limit, offset=offset, **filters)
    return RequestListResponse(
        items=[RequestResponse.model_validate(r) for r in items],
        total=repository.count(**filters),
    )


@router.get("/{request_id}", response_model=RequestSnapshot)
def get_request(
    request_id: int,
    user: CurrentUser = Depends(get_current_user),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Request with its parsed approval chain and ordered history"""
    cleaning_request, chain, history = workflow.snapshot(request_id)
    if not _can_view(user, cleaning_request, chain):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this request",
        )
    return to_snapshot(cleaning_request, chain, history)


@router.post("/{request_id}/decision", response_model=DecisionResponse)
@limiter.limit(get_rate_limit("decision"))
def decide_request(
    request: Request,
    request_id: int,
    decision: DecisionRequest,
    user: CurrentUser = Depends(get_current_user),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """
    Approve or reject the current step as the logged-in user.

    The session's email must be the current step's approver.
    """
    result = workflow.decide(
        request_id,
        acting_email=user.email,
        action=decision.action,
        comments=decision.comments,
        access_token=user.access_token,
    )
    return to_decision_response(result)
