"""Approval workflow: chain construction on submit and chain advancement on decide.

State machine per request::

    PendingApproval(step i) --approve--> PendingApproval(step i+1)   (more steps)
    PendingApproval(step i) --approve--> FullyApproved               (last step)
    PendingApproval(step i) --reject---> Rejected

FullyApproved and Rejected are absorbing. Both the dashboard decision endpoint
and the email-link endpoint go through :meth:`ApprovalWorkflow.decide`.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from oeapp.config import settings
from oeapp.errors import (
    AlreadyFinalized,
    InvalidDecisionToken,
    NotCurrentApprover,
    PersistenceConflict,
    RequestNotFound,
    UnresolvedApprover,
)
from oeapp.middleware.monitoring import record_decision_metric, record_request_created
from oeapp.models.cleaning_request import (
    FULLY_APPROVED,
    PENDING_APPROVAL,
    REJECTED,
    ApprovalHistory,
    CleaningRequest,
)
from oeapp.services.repository import HistoryEntry, RequestRepository
from oeapp.services.resolver import ApproverResolver, ApproverSelection
from oeapp.services.rule_engine import build_chain, load_active_rules
from oeapp.utils.chain import STEP_APPROVED, STEP_REJECTED, ApprovalChain, ApprovalStep, role_display_name
from oeapp.utils.logger import logger
from oeapp.utils.tokens import verify_decision_token

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTIONS = (ACTION_APPROVE, ACTION_REJECT)

# Columns a submission may set on the request row
REQUEST_FIELDS = (
    "store",
    "category",
    "third_party",
    "number_of_agents",
    "description",
    "start_date",
    "end_date",
    "shift_hours",
)


@dataclass(frozen=True)
class DecisionResult:
    new_status: str
    decided_step: int
    decided_role: str
    next_approver_role: Optional[str] = None
    next_approver_email: Optional[str] = None
    next_approver_name: Optional[str] = None


class ApprovalWorkflow:
    """Submit requests and apply approver decisions.

    The dispatcher is optional so the workflow can run without notifications
    (e.g. in scripts); when present it is only called after a commit.
    """

    def __init__(self, db: Session, dispatcher=None):
        self.db = db
        self.dispatcher = dispatcher
        self.repository = RequestRepository(db)
        self.resolver = ApproverResolver(db)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def create_chain(
        self,
        roles: Sequence[str],
        selections: Optional[Mapping[str, ApproverSelection]] = None,
        store: Optional[str] = None,
    ) -> ApprovalChain:
        """Resolve each role to a person; roles that cannot be resolved are dropped."""
        selections = selections or {}
        steps: List[ApprovalStep] = []
        for role in roles:
            try:
                identity = self.resolver.resolve(role, selections.get(role), store=store)
            except UnresolvedApprover as exc:
                logger.warning(f"Dropping approval step: {exc.message}", extra={"role": role})
                continue
            if not identity.has_contact:
                logger.warning(f"Dropping approval step without email for {role}", extra={"role": role})
                continue
            steps.append(ApprovalStep(role=role, approver=identity))
        return ApprovalChain(steps)

    def submit(
        self,
        fields: Mapping[str, Any],
        requester_email: str,
        requester_name: Optional[str] = None,
        selections: Optional[Mapping[str, ApproverSelection]] = None,
        access_token: Optional[str] = None,
    ) -> CleaningRequest:
        """Build the chain for a new request, persist both, and notify the first approver."""
        values = {key: fields.get(key) for key in REQUEST_FIELDS if key in fields}
        category = values.get("category")
        store = values.get("store")

        roles = build_chain(category, context={"store": store}, rules=load_active_rules(self.db))
        chain = self.create_chain(roles, selections, store=store)

        values["created_by_email"] = requester_email
        values["created_by_name"] = requester_name
        request = self.repository.create(values, chain)

        record_request_created(request.overall_status)
        logger.info(
            f"Extra cleaning request {request.id} submitted",
            extra={
                "request_id": request.id,
                "status": request.overall_status,
                "role": ",".join(chain.roles) or None,
            },
        )

        if request.overall_status == PENDING_APPROVAL and self.dispatcher is not None:
            self.dispatcher.on_submitted(request, access_token=access_token)
        return request

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self, request_id: int) -> Tuple[CleaningRequest, ApprovalChain, List[ApprovalHistory]]:
        """Request, parsed chain and ordered history, for approval and audit pages."""
        request = self.repository.get(request_id)
        return request, self.repository.load_chain(request), self.repository.history(request_id)

    # ------------------------------------------------------------------
    # Advancement
    # ------------------------------------------------------------------

    def decide(
        self,
        request_id: int,
        acting_email: str,
        action: str,
        comments: Optional[str] = None,
        link_token: Optional[str] = None,
        require_token: bool = False,
        access_token: Optional[str] = None,
    ) -> DecisionResult:
        """Apply one approve/reject decision to the request's current step.

        Raises:
            RequestNotFound: unknown request id.
            AlreadyFinalized: the request is FullyApproved or Rejected.
            NotCurrentApprover: ``acting_email`` does not hold the current step.
            InvalidDecisionToken: ``require_token`` is set and the link token is invalid.
            PersistenceConflict: the request changed concurrently twice in a row.
        """
        action = (action or "").strip().lower()
        if action not in ACTIONS:
            raise ValueError(f"Invalid action: {action!r}")

        try:
            request, result = self._decide_once(request_id, acting_email, action, comments, link_token, require_token)
        except PersistenceConflict:
            logger.info(
                "Decision conflicted with a concurrent write, retrying",
                extra={"request_id": request_id, "approver_email": acting_email, "action": action},
            )
            try:
                request, result = self._decide_once(request_id, acting_email, action, comments, link_token, require_token)
            except PersistenceConflict:
                record_decision_metric(action, "conflict")
                logger.warning(
                    "Decision conflicted twice, giving up",
                    extra={"request_id": request_id, "approver_email": acting_email, "action": action},
                )
                raise

        outcome = {
            PENDING_APPROVAL: "advanced",
            FULLY_APPROVED: "fully_approved",
            REJECTED: "rejected",
        }[result.new_status]
        record_decision_metric(action, outcome)
        logger.info(
            f"Request {request_id} {outcome} by {result.decided_role}",
            extra={
                "request_id": request_id,
                "approver_email": acting_email,
                "action": action,
                "status": result.new_status,
                "step": result.decided_step,
            },
        )

        self._notify(request, result, comments, access_token)
        return result

    def _refuse(self, exc: Exception, request_id: int, acting_email: str, action: str, outcome: str):
        record_decision_metric(action, outcome)
        logger.warning(
            f"Decision refused: {exc}",
            extra={"request_id": request_id, "approver_email": acting_email, "action": action},
        )
        raise exc

    def _decide_once(
        self,
        request_id: int,
        acting_email: str,
        action: str,
        comments: Optional[str],
        link_token: Optional[str],
        require_token: bool,
    ) -> Tuple[CleaningRequest, DecisionResult]:
        try:
            request = self.repository.get(request_id)
        except RequestNotFound as exc:
            self._refuse(exc, request_id, acting_email, action, "not_found")

        if request.is_terminal:
            self._refuse(
                AlreadyFinalized(
                    f"This request has already been {'approved' if request.overall_status == FULLY_APPROVED else 'rejected'}",
                    request_id=request_id,
                    status=request.overall_status,
                ),
                request_id, acting_email, action, "already_finalized",
            )

        chain = self.repository.load_chain(request)
        index = request.current_step
        step = chain.step_at(index)
        if step is None or not step.is_held_by(acting_email):
            if step is None:
                logger.error(
                    "Pending request points past the end of its chain",
                    extra={"request_id": request_id, "step": index},
                )
            self._refuse(
                NotCurrentApprover("You are not authorized to act on this request", request_id=request_id),
                request_id, acting_email, action, "not_current_approver",
            )

        if require_token and not verify_decision_token(link_token, request_id, acting_email, index):
            self._refuse(
                InvalidDecisionToken("The approval link is invalid or has expired", request_id=request_id),
                request_id, acting_email, action, "invalid_token",
            )

        now = datetime.utcnow()
        if action == ACTION_REJECT:
            new_chain = chain.with_decision(index, STEP_REJECTED, comments, now)
            new_step = index
            new_status = REJECTED
        else:
            new_chain = chain.with_decision(index, STEP_APPROVED, comments, now)
            new_step = index + 1
            new_status = FULLY_APPROVED if new_step >= len(new_chain) else PENDING_APPROVAL

        entry = HistoryEntry(
            step_index=index,
            role=step.role,
            approver_email=step.approver.email,
            approver_name=step.approver.name,
            action=STEP_REJECTED if action == ACTION_REJECT else STEP_APPROVED,
            comments=comments,
            action_date=now,
        )
        request = self.repository.apply_transition(request, index, new_chain, new_step, new_status, entry)

        next_step = new_chain.step_at(new_step) if new_status == PENDING_APPROVAL else None
        return request, DecisionResult(
            new_status=new_status,
            decided_step=index,
            decided_role=step.role,
            next_approver_role=next_step.role if next_step else None,
            next_approver_email=next_step.approver.email if next_step else None,
            next_approver_name=next_step.approver.name if next_step else None,
        )

    def _notify(
        self,
        request: CleaningRequest,
        result: DecisionResult,
        comments: Optional[str],
        access_token: Optional[str],
    ) -> None:
        if self.dispatcher is None:
            return
        if result.new_status == PENDING_APPROVAL:
            self.dispatcher.on_advance(request, access_token=access_token)
        else:
            self.dispatcher.on_terminal(
                request,
                result.new_status,
                comments=comments,
                decided_by_role=result.decided_role,
                access_token=access_token,
            )


def link_token_required() -> bool:
    """Whether email-link decisions must carry a valid signed token."""
    return settings.DECISION_TOKEN_REQUIRED


def decision_message(result: DecisionResult) -> str:
    """Human readable outcome for the decision response."""
    if result.new_status == REJECTED:
        return "Request has been rejected"
    if result.new_status == FULLY_APPROVED:
        return "Request has been fully approved"
    return f"Request approved and forwarded to {role_display_name(result.next_approver_role)}"


def selections_from_payload(payload: Optional[Mapping[str, Any]]) -> Dict[str, ApproverSelection]:
    """Map ``{role: {id, name, email}}`` from the form to resolver selections."""
    selections: Dict[str, ApproverSelection] = {}
    for role, value in (payload or {}).items():
        if not value:
            continue
        if isinstance(value, ApproverSelection):
            selections[role] = value
        elif isinstance(value, Mapping):
            selections[role] = ApproverSelection(
                id=value.get("id"),
                name=value.get("name"),
                email=value.get("email"),
            )
        else:
            selections[role] = ApproverSelection(id=value)
    return selections
