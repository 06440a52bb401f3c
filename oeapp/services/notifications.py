"""Notification dispatch for approval transitions and escalations.

The dispatcher turns a committed transition into an :class:`OutboundMessage`
and hands it to a :class:`NotificationQueue`. A daemon worker thread drains
the queue and calls the mail backend, so the HTTP response never waits on the
mail provider and a delivery failure never reaches the approval transaction.
"""
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from oeapp.config import settings
from oeapp.errors import NotificationDeliveryFailed
from oeapp.middleware.monitoring import record_notification_metric
from oeapp.models.cleaning_request import FULLY_APPROVED, CleaningRequest
from oeapp.services.mailer import (
    TEMPLATE_APPROVAL_REQUEST,
    TEMPLATE_DEADLINE_REMINDER,
    TEMPLATE_ESCALATION,
    TEMPLATE_STATUS_UPDATE,
)
from oeapp.utils.logger import logger
from oeapp.utils.tokens import create_decision_token

_STOP = object()


@dataclass(frozen=True)
class OutboundMessage:
    to: str
    template: str
    context: Dict[str, Any] = field(default_factory=dict)
    access_token: Optional[str] = None
    request_id: Optional[int] = None


class NotificationQueue:
    """Outbound message queue drained by a single daemon thread.

    With ``synchronous=True`` messages are delivered inline by ``enqueue``;
    delivery errors are still caught and logged.
    """

    def __init__(self, mailer, synchronous: bool = False):
        self.mailer = mailer
        self.synchronous = synchronous
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.synchronous or self.is_running:
            return
        self._thread = threading.Thread(target=self._run, name="notification-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        if self.is_running:
            self._queue.put(_STOP)
            self._thread.join(timeout)
        self._thread = None

    def enqueue(self, message: OutboundMessage) -> None:
        if self.synchronous:
            self.deliver(message)
            return
        if not self.is_running:
            self.start()
        self._queue.put(message)

    def join(self) -> None:
        """Block until every queued message has been processed."""
        self._queue.join()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.deliver(item)
            finally:
                self._queue.task_done()

    def deliver(self, message: OutboundMessage) -> bool:
        """Send one message; returns False instead of raising on failure."""
        try:
            result = self.mailer.send(
                message.to,
                message.template,
                message.context,
                access_token=message.access_token,
            )
            if not result.get("success"):
                raise NotificationDeliveryFailed(result.get("error") or "unknown error", message.request_id)
        except Exception as exc:
            record_notification_metric(message.template, "failed")
            logger.warning(
                f"Notification delivery failed to {message.to}",
                extra={
                    "request_id": message.request_id,
                    "template": message.template,
                    "error": str(exc),
                },
            )
            return False

        record_notification_metric(message.template, "sent")
        logger.info(
            f"Notification sent to {message.to}",
            extra={"request_id": message.request_id, "template": message.template},
        )
        return True


def _fmt_date(value) -> Optional[str]:
    return value.strftime("%d/%m/%Y") if value else None


class NotificationDispatcher:
    """Builds notifications for chain transitions and escalations.

    Every public method swallows and logs its own errors: it is called after
    the transition has been committed and must not affect the caller.
    """

    def __init__(self, outbound: NotificationQueue, base_url: Optional[str] = None):
        self.outbound = outbound
        self.base_url = (base_url or settings.APP_BASE_URL).rstrip("/")

    def view_url(self, request_id: int) -> str:
        return f"{self.base_url}/stores/extra-cleaning/view/{request_id}"

    def decision_url(self, request_id: int, action: str, email: str, step: int) -> str:
        params = {"action": action, "email": email}
        token = create_decision_token(request_id, email, step)
        if token:
            params["token"] = token
        return f"{self.base_url}/public/approve/{request_id}?{urlencode(params)}"

    def request_context(self, request: CleaningRequest) -> Dict[str, Any]:
        return {
            "request_id": request.id,
            "store": request.store,
            "category": request.category,
            "third_party": request.third_party,
            "number_of_agents": request.number_of_agents,
            "submitted_by": request.created_by_name or request.created_by_email,
            "start_date": _fmt_date(request.start_date),
            "end_date": _fmt_date(request.end_date),
            "description": request.description,
            "view_url": self.view_url(request.id),
        }

    def _send(self, message: OutboundMessage) -> None:
        try:
            self.outbound.enqueue(message)
        except Exception as exc:
            logger.error(
                "Failed to queue notification",
                extra={"request_id": message.request_id, "template": message.template, "error": str(exc)},
            )

    def on_advance(self, request: CleaningRequest, access_token: Optional[str] = None) -> None:
        """Ask the request's current approver for a decision."""
        try:
            email = request.current_approver_email
            if not email:
                return
            context = self.request_context(request)
            context.update({
                "role": request.current_approver_role,
                "approve_url": self.decision_url(request.id, "approve", email, request.current_step),
                "reject_url": self.decision_url(request.id, "reject", email, request.current_step),
            })
            self._send(OutboundMessage(
                to=email,
                template=TEMPLATE_APPROVAL_REQUEST,
                context=context,
                access_token=access_token,
                request_id=request.id,
            ))
        except Exception as exc:
            logger.error("Failed to build approval notification", extra={"request_id": request.id, "error": str(exc)})

    # The first approval request after submission is the same message
    on_submitted = on_advance

    def on_terminal(
        self,
        request: CleaningRequest,
        final_status: str,
        comments: Optional[str] = None,
        decided_by_role: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> None:
        """Tell the requester the final outcome (with the rejecting approver's comments)."""
        try:
            if not request.created_by_email:
                return
            context = self.request_context(request)
            context.update({
                "outcome": "fully approved" if final_status == FULLY_APPROVED else "rejected",
                "status": final_status,
                "decided_by_role": decided_by_role,
                "comments": comments if final_status != FULLY_APPROVED else None,
            })
            self._send(OutboundMessage(
                to=request.created_by_email,
                template=TEMPLATE_STATUS_UPDATE,
                context=context,
                access_token=access_token,
                request_id=request.id,
            ))
        except Exception as exc:
            logger.error("Failed to build status notification", extra={"request_id": request.id, "error": str(exc)})

    def on_escalation(self, to: str, context: Dict[str, Any]) -> None:
        self._send(OutboundMessage(to=to, template=TEMPLATE_ESCALATION, context=context))

    def on_deadline_reminder(self, to: str, context: Dict[str, Any]) -> None:
        self._send(OutboundMessage(to=to, template=TEMPLATE_DEADLINE_REMINDER, context=context))
