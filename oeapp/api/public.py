"""Email-link approval endpoints.

These routes are reached from the approve/reject links in approval emails and
carry no session. The approver's email address in the link is the acting
identity; when ``DECISION_TOKEN_REQUIRED`` is set the link must also carry a
valid signed token for the current step.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from oeapp.api.deps import get_workflow
from oeapp.errors import InvalidDecisionToken
from oeapp.middleware.rate_limit import get_rate_limit, limiter
from oeapp.schemas.decision import (
    PublicApprovalPage,
    PublicDecisionRequest,
    PublicDecisionResponse,
    PublicNextApprover,
    PublicRequestView,
    PublicStep,
)
from oeapp.services.workflow import ApprovalWorkflow, decision_message, link_token_required
from oeapp.utils.logger import logger
from oeapp.utils.tokens import verify_decision_token

router = APIRouter(prefix="/public/approve", tags=["public"])


@router.get("/{request_id}", response_model=PublicApprovalPage)
@limiter.limit(get_rate_limit("public_view"))
def approval_page(
    request: Request,
    request_id: int,
    email: str = Query(..., min_length=3),
    token: Optional[str] = Query(None),
    action: Optional[str] = Query(None, pattern="^(approve|reject)$"),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """
    Data for the approval page opened from an email link.

    ``can_decide`` is true only while the request is pending and the link's
    email holds the current step. Finalized requests are returned read-only.
    Approver emails are never included: the link's email is the credential.
    """
    cleaning_request, chain, _ = workflow.snapshot(request_id)
    step = chain.step_at(cleaning_request.current_step)
    can_decide = (
        not cleaning_request.is_terminal
        and step is not None
        and step.is_held_by(email)
    )

    if can_decide and link_token_required():
        if not verify_decision_token(token, request_id, email, cleaning_request.current_step):
            logger.warning(
                "Approval page opened with an invalid link token",
                extra={"request_id": request_id, "approver_email": email},
            )
            raise InvalidDecisionToken("The approval link is invalid or has expired", request_id=request_id)

    return PublicApprovalPage(
        request=PublicRequestView.model_validate(cleaning_request),
        approval_chain=[PublicStep(role=s.role, status=s.status, approvedAt=s.decided_at) for s in chain],
        can_decide=can_decide,
        action=action,
    )


@router.post("/{request_id}/submit", response_model=PublicDecisionResponse)
@limiter.limit(get_rate_limit("public_decision"))
def submit_decision(
    request: Request,
    request_id: int,
    decision: PublicDecisionRequest,
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """
    Approve or reject from an email link.

    Goes through the same state machine as the dashboard decision endpoint.
    """
    result = workflow.decide(
        request_id,
        acting_email=decision.email,
        action=decision.action,
        comments=decision.comments,
        link_token=decision.token,
        require_token=link_token_required(),
    )
    next_approver = None
    if result.next_approver_role:
        next_approver = PublicNextApprover(role=result.next_approver_role, name=result.next_approver_name)
    return PublicDecisionResponse(
        success=True,
        message=decision_message(result),
        status=result.new_status,
        nextApprover=next_approver,
    )
