"""Escalation sweep for stale approvals and overdue action items.

The sweep is idempotent: an item is escalated at most once while its
escalation stays ``Pending``. A NOT EXISTS filter skips items that already
have one and the partial unique index on ``escalations`` rejects the insert
if two sweeps race; the loser rolls back and moves on.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, exists, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from oeapp.config import settings
from oeapp.middleware.monitoring import record_escalation_metric
from oeapp.models.approver import Approver
from oeapp.models.cleaning_request import PENDING_APPROVAL, CleaningRequest
from oeapp.models.escalation import (
    ESCALATION_PENDING,
    ESCALATION_RESOLVED,
    SOURCE_ACTION_ITEM,
    SOURCE_APPROVAL,
    ActionItem,
    Escalation,
    Notification,
)
from oeapp.services.resolver import ApproverResolver
from oeapp.utils.logger import logger

NOTIFICATION_ESCALATION = "escalation"
NOTIFICATION_REMINDER = "action-plan-reminder"


def _open_escalation(source: str, source_id_column):
    return exists().where(and_(
        Escalation.source == source,
        Escalation.source_id == source_id_column,
        Escalation.status == ESCALATION_PENDING,
    ))


def request_link(request_id: int) -> str:
    return f"/stores/extra-cleaning/view/{request_id}"


def action_item_link(item_id: int) -> str:
    return f"/action-plans/{item_id}"


class EscalationService:
    """Creates escalations, deadline reminders and their in-app notifications"""

    def __init__(self, db: Session, dispatcher=None):
        self.db = db
        self.dispatcher = dispatcher
        self.resolver = ApproverResolver(db)

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def run_sweep(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Escalate stale approvals and overdue action items once each."""
        if not settings.ESCALATION_ENABLED:
            logger.info("Escalation sweep skipped: auto-escalation is disabled")
            return {"escalations_created": 0, "emails_queued": 0, "disabled": True}

        now = now or datetime.utcnow()
        created = 0
        emailed = 0

        for request in self._stale_requests(now):
            outcome = self._escalate_request(request, now)
            created += outcome[0]
            emailed += outcome[1]

        for item in self._overdue_items(now):
            outcome = self._escalate_item(item, now)
            created += outcome[0]
            emailed += outcome[1]

        logger.info(f"Escalation sweep created {created} escalations, queued {emailed} emails")
        return {"escalations_created": created, "emails_queued": emailed, "disabled": False}

    def _stale_requests(self, now: datetime) -> List[CleaningRequest]:
        cutoff = now - timedelta(hours=settings.APPROVAL_STALE_HOURS)
        return (
            self.db.query(CleaningRequest)
            .filter(
                CleaningRequest.overall_status == PENDING_APPROVAL,
                CleaningRequest.current_step_since < cutoff,
                ~_open_escalation(SOURCE_APPROVAL, CleaningRequest.id),
            )
            .order_by(CleaningRequest.id.asc())
            .all()
        )

    def _overdue_items(self, now: datetime) -> List[ActionItem]:
        return (
            self.db.query(ActionItem)
            .filter(
                ActionItem.deadline < now,
                ActionItem.completed_at.is_(None),
                ~_open_escalation(SOURCE_ACTION_ITEM, ActionItem.id),
            )
            .order_by(ActionItem.id.asc())
            .all()
        )

    def _request_target(self, request: CleaningRequest) -> Optional[Approver]:
        """Store Area Manager, or the fallback role when the manager is the one holding it up."""
        manager = self.resolver.store_area_manager(request.store)
        current = (request.current_approver_email or "").strip().lower()
        if manager is not None and manager.email and manager.email.strip().lower() != current:
            return manager
        for holder in self.resolver.candidates(settings.ESCALATION_FALLBACK_ROLE):
            if holder.email and holder.email.strip().lower() != current:
                return holder
        return None

    def _escalate_request(self, request: CleaningRequest, now: datetime) -> Tuple[int, int]:
        target = self._request_target(request)
        if target is None:
            logger.warning(
                f"No escalation target for stale request {request.id}",
                extra={"request_id": request.id, "role": request.current_approver_role},
            )
            return 0, 0

        hours = int((now - request.current_step_since).total_seconds() // 3600)
        reference = f"Extra Cleaning request #{request.id}"
        reason = f"Awaiting {request.current_approver_role} approval for {hours} hour(s)"
        return self._create(
            source=SOURCE_APPROVAL,
            source_id=request.id,
            store=request.store,
            target=target,
            reference=reference,
            reason=reason,
            link=request_link(request.id),
            now=now,
        )

    def _escalate_item(self, item: ActionItem, now: datetime) -> Tuple[int, int]:
        target = self.resolver.store_area_manager(item.store)
        if target is None or not target.email:
            logger.warning(f"No Area Manager assigned to store {item.store}", extra={"role": "AreaManager"})
            return 0, 0

        days = (now.date() - item.deadline.date()).days
        return self._create(
            source=SOURCE_ACTION_ITEM,
            source_id=item.id,
            store=item.store,
            target=target,
            reference=item.reference,
            reason=f"Action plan deadline exceeded by {days} day(s)",
            link=action_item_link(item.id),
            now=now,
        )

    def _create(
        self,
        source: str,
        source_id: int,
        store: Optional[str],
        target: Approver,
        reference: str,
        reason: str,
        link: str,
        now: datetime,
    ) -> Tuple[int, int]:
        previous = (
            self.db.query(func.count(Escalation.id))
            .filter(Escalation.source == source, Escalation.source_id == source_id)
            .scalar()
        )
        escalation = Escalation(
            source=source,
            source_id=source_id,
            store=store,
            escalated_to_email=target.email,
            escalated_to_name=target.name,
            level=(previous or 0) + 1,
            reason=reason,
            status=ESCALATION_PENDING,
            created_at=now,
        )
        try:
            self.db.add(escalation)
            self.db.add(Notification(
                user_email=target.email,
                title=f"Overdue - Escalation: {reference}",
                message=f"{reference} at {store or 'unknown store'}: {reason}. Please follow up.",
                link=link,
                type=NOTIFICATION_ESCALATION,
                created_at=now,
            ))
            self.db.commit()
        except IntegrityError:
            # Another sweep escalated the same item first
            self.db.rollback()
            logger.info(f"Skipping {source} {source_id}: already escalated")
            return 0, 0
        except Exception as exc:
            self.db.rollback()
            logger.error(
                f"Failed to escalate {source} {source_id}",
                extra={"error": str(exc)},
                exc_info=True,
            )
            return 0, 0

        record_escalation_metric(source)
        logger.info(
            f"Escalated {reference} to {target.email}",
            extra={"escalation_id": escalation.id, "request_id": source_id if source == SOURCE_APPROVAL else None},
        )

        if settings.ESCALATION_EMAIL_ENABLED and self.dispatcher is not None:
            self.dispatcher.on_escalation(target.email, {
                "recipient_name": target.name,
                "reference": reference,
                "store": store,
                "reason": reason,
                "link": f"{self.dispatcher.base_url}{link}",
            })
            return 1, 1
        return 1, 0

    # ------------------------------------------------------------------
    # Deadline reminders
    # ------------------------------------------------------------------

    def send_deadline_reminders(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Remind owners of action items due in any of ``ESCALATION_REMINDER_DAYS`` days.

        At most one reminder per item per day.
        """
        now = now or datetime.utcnow()
        today = datetime(now.year, now.month, now.day)
        sent = 0

        for days_before in sorted(set(settings.ESCALATION_REMINDER_DAYS)):
            day_start = today + timedelta(days=days_before)
            items = (
                self.db.query(ActionItem)
                .filter(
                    ActionItem.completed_at.is_(None),
                    ActionItem.owner_email.isnot(None),
                    ActionItem.deadline >= day_start,
                    ActionItem.deadline < day_start + timedelta(days=1),
                )
                .order_by(ActionItem.id.asc())
                .all()
            )
            for item in items:
                link = action_item_link(item.id)
                already = (
                    self.db.query(Notification.id)
                    .filter(
                        Notification.type == NOTIFICATION_REMINDER,
                        Notification.link == link,
                        Notification.created_at >= today,
                    )
                    .first()
                )
                if already:
                    continue

                plural = "s" if days_before != 1 else ""
                self.db.add(Notification(
                    user_email=item.owner_email,
                    title=f"Action Plan Deadline in {days_before} Day{plural}",
                    message=(
                        f"The action plan {item.reference} at {item.store} is due in "
                        f"{days_before} day{plural}. Please complete it before the deadline."
                    ),
                    link=link,
                    type=NOTIFICATION_REMINDER,
                    created_at=now,
                ))
                self.db.commit()
                sent += 1

                if self.dispatcher is not None:
                    self.dispatcher.on_deadline_reminder(item.owner_email, {
                        "days_before": days_before,
                        "reference": item.reference,
                        "store": item.store,
                        "link": f"{self.dispatcher.base_url}{link}",
                    })

        logger.info(f"Sent {sent} deadline reminders")
        return {"reminders_sent": sent}

    # ------------------------------------------------------------------
    # Action items and escalation lifecycle
    # ------------------------------------------------------------------

    def create_action_item(
        self,
        reference: str,
        store: str,
        deadline: datetime,
        owner_email: Optional[str] = None,
        source: str = "action-plan",
    ) -> ActionItem:
        if deadline.tzinfo is not None:
            deadline = deadline.astimezone(timezone.utc).replace(tzinfo=None)
        item = ActionItem(
            source=source,
            reference=reference,
            store=store,
            owner_email=owner_email,
            deadline=deadline,
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def complete_action_item(self, item_id: int) -> Optional[ActionItem]:
        """Mark an action item completed and resolve its pending escalations."""
        item = self.db.query(ActionItem).filter(ActionItem.id == item_id).first()
        if item is None:
            return None
        now = datetime.utcnow()
        if item.completed_at is None:
            item.completed_at = now
        self.db.query(Escalation).filter(
            Escalation.source == SOURCE_ACTION_ITEM,
            Escalation.source_id == item_id,
            Escalation.status == ESCALATION_PENDING,
        ).update({"status": ESCALATION_RESOLVED, "resolved_at": now}, synchronize_session=False)
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"Action item {item_id} marked completed")
        return item

    def resolve(self, escalation_id: int) -> Optional[Escalation]:
        escalation = self.db.query(Escalation).filter(Escalation.id == escalation_id).first()
        if escalation is None:
            return None
        if escalation.status == ESCALATION_PENDING:
            escalation.status = ESCALATION_RESOLVED
            escalation.resolved_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(escalation)
            logger.info(f"Escalation {escalation_id} resolved", extra={"escalation_id": escalation_id})
        return escalation

    def list(
        self,
        status: Optional[str] = None,
        source: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Escalation]:
        query = self.db.query(Escalation)
        if status:
            query = query.filter(Escalation.status == status)
        if source:
            query = query.filter(Escalation.source == source)
        return query.order_by(Escalation.created_at.desc(), Escalation.id.desc()).offset(offset).limit(limit).all()

    def stats(self, days: int = 30) -> Dict[str, int]:
        """Pending, resolved and total escalations created in the last ``days`` days."""
        since = datetime.utcnow() - timedelta(days=days)
        rows = (
            self.db.query(Escalation.status, func.count(Escalation.id))
            .filter(Escalation.created_at >= since)
            .group_by(Escalation.status)
            .all()
        )
        counts = dict(rows)
        pending = counts.get(ESCALATION_PENDING, 0)
        resolved = counts.get(ESCALATION_RESOLVED, 0)
        return {"pending": pending, "resolved": resolved, "total": sum(counts.values())}
