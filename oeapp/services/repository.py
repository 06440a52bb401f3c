"""Persistence for cleaning requests and their approval chains.

The serialized chain and the structured columns derived from it
(``current_step``, ``overall_status``, ``current_approver_email``,
``current_approver_role``) are only ever written together by this module.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from oeapp.errors import PersistenceConflict, RequestNotFound
from oeapp.models.cleaning_request import (
    FULLY_APPROVED,
    PENDING_APPROVAL,
    ApprovalHistory,
    CleaningRequest,
)
from oeapp.models.escalation import ESCALATION_PENDING, ESCALATION_RESOLVED, SOURCE_APPROVAL, Escalation
from oeapp.utils.chain import ApprovalChain


@dataclass(frozen=True)
class HistoryEntry:
    step_index: int
    role: str
    approver_email: str
    approver_name: Optional[str]
    action: str
    comments: Optional[str]
    action_date: datetime


def chain_projection(chain: ApprovalChain, current_step: int, overall_status: str) -> Dict[str, Any]:
    """Structured columns derived from a chain and its pointer."""
    step = chain.step_at(current_step) if overall_status == PENDING_APPROVAL else None
    return {
        "approval_chain": chain.to_json(),
        "current_step": current_step,
        "overall_status": overall_status,
        "current_approver_email": step.approver.email if step else None,
        "current_approver_role": step.role if step else None,
    }


class RequestRepository:
    """Reads and atomic writes for :class:`CleaningRequest`"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, request_id: int) -> CleaningRequest:
        request = self.db.query(CleaningRequest).filter(CleaningRequest.id == request_id).first()
        if request is None:
            raise RequestNotFound(f"Request {request_id} not found", request_id=request_id)
        return request

    @staticmethod
    def load_chain(request: CleaningRequest) -> ApprovalChain:
        return ApprovalChain.from_json(request.approval_chain)

    def history(self, request_id: int) -> List[ApprovalHistory]:
        return (
            self.db.query(ApprovalHistory)
            .filter(ApprovalHistory.request_id == request_id)
            .order_by(ApprovalHistory.step_index.asc(), ApprovalHistory.id.asc())
            .all()
        )

    def create(self, fields: Dict[str, Any], chain: ApprovalChain) -> CleaningRequest:
        """Insert a request together with its chain in one commit.

        An empty chain is stored as FullyApproved with the pointer past the end.
        """
        status = FULLY_APPROVED if chain.is_empty else PENDING_APPROVAL
        now = datetime.utcnow()
        request = CleaningRequest(
            **fields,
            **chain_projection(chain, 0, status),
            current_step_since=now,
            created_at=now,
            updated_at=now,
        )
        try:
            self.db.add(request)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(request)
        return request

    def apply_transition(
        self,
        request: CleaningRequest,
        expected_step: int,
        chain: ApprovalChain,
        new_step: int,
        new_status: str,
        entry: HistoryEntry,
    ) -> CleaningRequest:
        """Persist one decision: chain, structured columns and history row.

        The update is conditional on the pointer and status read by the caller;
        if another decision got there first nothing is written and
        :class:`PersistenceConflict` is raised.
        """
        now = entry.action_date
        values = chain_projection(chain, new_step, new_status)
        values["current_step_since"] = now
        values["updated_at"] = now

        try:
            updated = (
                self.db.query(CleaningRequest)
                .filter(
                    CleaningRequest.id == request.id,
                    CleaningRequest.current_step == expected_step,
                    CleaningRequest.overall_status == PENDING_APPROVAL,
                )
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                raise PersistenceConflict(
                    f"Request {request.id} changed while the decision was being recorded",
                    request_id=request.id,
                )

            self.db.add(ApprovalHistory(
                request_id=request.id,
                step_index=entry.step_index,
                role=entry.role,
                approver_email=entry.approver_email,
                approver_name=entry.approver_name,
                action=entry.action,
                comments=entry.comments,
                action_date=entry.action_date,
            ))

            # The staleness clock restarts on every transition
            self.db.query(Escalation).filter(
                Escalation.source == SOURCE_APPROVAL,
                Escalation.source_id == request.id,
                Escalation.status == ESCALATION_PENDING,
            ).update(
                {"status": ESCALATION_RESOLVED, "resolved_at": now},
                synchronize_session=False,
            )

            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise PersistenceConflict(
                f"Step {entry.step_index} of request {request.id} was already decided",
                request_id=request.id,
            ) from exc
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(request)
        return request

    def _filtered(
        self,
        status: Optional[str] = None,
        created_by: Optional[str] = None,
        approver_email: Optional[str] = None,
    ):
        query = self.db.query(CleaningRequest)
        if status:
            query = query.filter(CleaningRequest.overall_status == status)
        if created_by:
            query = query.filter(func.lower(CleaningRequest.created_by_email) == created_by.lower())
        if approver_email:
            query = query.filter(func.lower(CleaningRequest.current_approver_email) == approver_email.lower())
        return query

    def list(
        self,
        status: Optional[str] = None,
        created_by: Optional[str] = None,
        approver_email: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[CleaningRequest]:
        query = self._filtered(status, created_by, approver_email)
        return query.order_by(CleaningRequest.created_at.desc(), CleaningRequest.id.desc()).offset(offset).limit(limit).all()

    def count(
        self,
        status: Optional[str] = None,
        created_by: Optional[str] = None,
        approver_email: Optional[str] = None,
    ) -> int:
        """Number of requests matching the same filters as :meth:`list`"""
        return self._filtered(status, created_by, approver_email).count()
