"""Tests for the escalation sweep, deadline reminders and action items"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from conftest import AREA_MANAGER_EMAIL, HEAD_OF_OPS_EMAIL, REQUESTER_EMAIL, STORE, TestingSessionLocal
from oeapp.config import settings
from oeapp.models.escalation import (
    ESCALATION_PENDING,
    ESCALATION_RESOLVED,
    SOURCE_ACTION_ITEM,
    SOURCE_APPROVAL,
    Escalation,
    Notification,
)
from oeapp.services.escalation import NOTIFICATION_ESCALATION, NOTIFICATION_REMINDER, EscalationService
from oeapp.services.mailer import TEMPLATE_DEADLINE_REMINDER, TEMPLATE_ESCALATION
from oeapp.services.scheduler import EscalationScheduler
from oeapp.services.workflow import ApprovalWorkflow


@pytest.fixture
def service(db: Session, dispatcher, directory) -> EscalationService:
    return EscalationService(db, dispatcher)


def _submit(workflow: ApprovalWorkflow):
    return workflow.submit({"store": STORE, "category": "Cleaning"}, requester_email=REQUESTER_EMAIL)


def _later(hours: int = 0, days: int = 0) -> datetime:
    return datetime.utcnow() + timedelta(hours=hours, days=days)


def test_fresh_requests_are_not_escalated(service: EscalationService, workflow: ApprovalWorkflow):
    _submit(workflow)
    result = service.run_sweep()
    assert result == {"escalations_created": 0, "emails_queued": 0, "disabled": False}


def test_stale_request_escalates_once(db: Session, service: EscalationService, workflow: ApprovalWorkflow, mailer):
    request = _submit(workflow)
    mailer.sent.clear()
    now = _later(hours=settings.APPROVAL_STALE_HOURS + 1)

    result = service.run_sweep(now=now)
    assert result == {"escalations_created": 1, "emails_queued": 1, "disabled": False}

    escalation = db.query(Escalation).one()
    assert escalation.source == SOURCE_APPROVAL
    assert escalation.source_id == request.id
    assert escalation.level == 1
    assert escalation.status == ESCALATION_PENDING
    # The store's Area Manager is the one holding it up, so the fallback role is escalated to
    assert escalation.escalated_to_email == HEAD_OF_OPS_EMAIL

    notification = db.query(Notification).one()
    assert notification.type == NOTIFICATION_ESCALATION
    assert notification.user_email == HEAD_OF_OPS_EMAIL
    assert notification.link == f"/stores/extra-cleaning/view/{request.id}"

    assert mailer.sent[0]["to"] == HEAD_OF_OPS_EMAIL
    assert mailer.sent[0]["template"] == TEMPLATE_ESCALATION

    # Sweeping again leaves the pending escalation alone
    assert service.run_sweep(now=now)["escalations_created"] == 0
    assert db.query(Escalation).count() == 1


def test_transition_resolves_and_restarts_the_clock(db: Session, service: EscalationService, workflow: ApprovalWorkflow):
    request = _submit(workflow)
    service.run_sweep(now=_later(hours=settings.APPROVAL_STALE_HOURS + 1))

    workflow.decide(request.id, AREA_MANAGER_EMAIL, "approve")

    first = db.query(Escalation).one()
    assert first.status == ESCALATION_RESOLVED
    assert first.resolved_at is not None

    # Just advanced: not stale yet
    assert service.run_sweep()["escalations_created"] == 0

    service.run_sweep(now=_later(hours=settings.APPROVAL_STALE_HOURS + 1))
    second = db.query(Escalation).filter(Escalation.status == ESCALATION_PENDING).one()
    assert second.level == 2
    # Now the Head of Operations is holding it up; the store manager is told
    assert second.escalated_to_email == AREA_MANAGER_EMAIL


def test_finalized_requests_are_never_escalated(service: EscalationService, workflow: ApprovalWorkflow):
    request = _submit(workflow)
    workflow.decide(request.id, AREA_MANAGER_EMAIL, "reject", comments="no")
    assert service.run_sweep(now=_later(days=30))["escalations_created"] == 0


def test_sweep_disabled(service: EscalationService, workflow: ApprovalWorkflow, monkeypatch):
    monkeypatch.setattr(settings, "ESCALATION_ENABLED", False)
    _submit(workflow)
    result = service.run_sweep(now=_later(days=30))
    assert result["disabled"] is True
    assert result["escalations_created"] == 0


def test_escalation_email_can_be_disabled(service: EscalationService, workflow: ApprovalWorkflow, mailer, monkeypatch):
    monkeypatch.setattr(settings, "ESCALATION_EMAIL_ENABLED", False)
    _submit(workflow)
    mailer.sent.clear()

    result = service.run_sweep(now=_later(hours=settings.APPROVAL_STALE_HOURS + 1))
    assert result == {"escalations_created": 1, "emails_queued": 0, "disabled": False}
    assert mailer.sent == []


def test_overdue_action_item(db: Session, service: EscalationService, mailer):
    item = service.create_action_item(
        reference="INSP-2025-0042",
        store=STORE,
        deadline=datetime.utcnow() - timedelta(days=2),
        owner_email="store.manager@example.com",
    )

    result = service.run_sweep()
    assert result["escalations_created"] == 1

    escalation = db.query(Escalation).one()
    assert escalation.source == SOURCE_ACTION_ITEM
    assert escalation.source_id == item.id
    assert escalation.escalated_to_email == AREA_MANAGER_EMAIL
    assert "deadline exceeded by 2 day(s)" in escalation.reason
    assert mailer.sent[-1]["context"]["link"].endswith(f"/action-plans/{item.id}")

    assert service.run_sweep()["escalations_created"] == 0

    completed = service.complete_action_item(item.id)
    assert completed.completed_at is not None
    db.refresh(escalation)
    assert escalation.status == ESCALATION_RESOLVED

    # Completed items are not escalated again
    assert service.run_sweep()["escalations_created"] == 0
    assert service.complete_action_item(999) is None


def test_action_item_without_area_manager_is_skipped(db: Session, service: EscalationService):
    service.create_action_item(
        reference="INSP-1", store="Unassigned Store", deadline=datetime.utcnow() - timedelta(days=1),
    )
    assert service.run_sweep()["escalations_created"] == 0
    assert db.query(Escalation).count() == 0


def test_timezone_aware_deadline_is_stored_as_utc(service: EscalationService):
    deadline = datetime(2025, 3, 10, 12, 0, tzinfo=timezone(timedelta(hours=3)))
    item = service.create_action_item(reference="INSP-2", store=STORE, deadline=deadline)
    assert item.deadline == datetime(2025, 3, 10, 9, 0)


def test_deadline_reminders_once_per_day(db: Session, service: EscalationService, mailer):
    now = datetime(2025, 3, 10, 8, 0)
    due_in_three = service.create_action_item(
        reference="INSP-3", store=STORE, deadline=datetime(2025, 3, 13, 17, 0), owner_email="owner@example.com",
    )
    service.create_action_item(
        reference="INSP-4", store=STORE, deadline=datetime(2025, 3, 15, 17, 0), owner_email="owner@example.com",
    )
    service.create_action_item(reference="INSP-5", store=STORE, deadline=datetime(2025, 3, 11, 9, 0))

    assert service.send_deadline_reminders(now=now) == {"reminders_sent": 1}
    notification = db.query(Notification).filter(Notification.type == NOTIFICATION_REMINDER).one()
    assert notification.user_email == "owner@example.com"
    assert notification.title == "Action Plan Deadline in 3 Days"
    assert notification.link == f"/action-plans/{due_in_three.id}"
    assert mailer.sent[-1]["template"] == TEMPLATE_DEADLINE_REMINDER

    assert service.send_deadline_reminders(now=now + timedelta(hours=4)) == {"reminders_sent": 0}


def test_resolve_list_and_stats(service: EscalationService, workflow: ApprovalWorkflow):
    _submit(workflow)
    _submit(workflow)
    service.run_sweep(now=_later(hours=settings.APPROVAL_STALE_HOURS + 1))

    escalations = service.list()
    assert len(escalations) == 2
    resolved = service.resolve(escalations[0].id)
    assert resolved.status == ESCALATION_RESOLVED
    assert service.resolve(9999) is None

    assert len(service.list(status=ESCALATION_PENDING)) == 1
    assert len(service.list(source=SOURCE_ACTION_ITEM)) == 0
    assert service.stats() == {"pending": 1, "resolved": 1, "total": 2}


def test_scheduler_run_once(db: Session, dispatcher, directory):
    service = EscalationService(db, dispatcher)
    service.create_action_item(reference="INSP-6", store=STORE, deadline=datetime.utcnow() - timedelta(days=1))

    scheduler = EscalationScheduler(dispatcher, interval_seconds=3600, session_factory=TestingSessionLocal)
    result = scheduler.run_once()

    assert result["escalations_created"] == 1
    assert result["reminders_sent"] == 0


def test_scheduler_start_and_stop(dispatcher, db: Session):
    scheduler = EscalationScheduler(dispatcher, interval_seconds=3600, session_factory=TestingSessionLocal)

    async def cycle():
        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.05)
        await scheduler.stop()

    asyncio.run(cycle())
    assert not scheduler.running


def test_escalation_endpoints(client: TestClient, admin_headers: dict):
    assert client.post("/escalations/run").status_code == 401

    response = client.post("/escalations/run", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {
        "escalations_created": 0, "emails_queued": 0, "reminders_sent": 0, "disabled": False,
    }

    response = client.post("/action-items", json={
        "reference": "INSP-7",
        "store": STORE,
        "deadline": (datetime.utcnow() - timedelta(days=1)).isoformat(),
    }, headers=admin_headers)
    assert response.status_code == 201
    item_id = response.json()["id"]

    assert client.post("/escalations/run", headers=admin_headers).json()["escalations_created"] == 1

    listed = client.get("/escalations", params={"status": "Pending"}, headers=admin_headers).json()
    assert listed["total"] == 1
    assert listed["items"][0]["escalated_to_email"] == AREA_MANAGER_EMAIL
    assert client.get("/escalations", params={"status": "Open"}, headers=admin_headers).status_code == 400

    assert client.get("/action-items", headers=admin_headers).json()[0]["id"] == item_id
    response = client.post(f"/action-items/{item_id}/complete", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["completed_at"] is not None
    assert client.get("/action-items", headers=admin_headers).json() == []
    assert client.post("/action-items/999/complete", headers=admin_headers).status_code == 404

    stats = client.get("/escalations/stats", headers=admin_headers).json()
    assert stats == {"pending": 0, "resolved": 1, "total": 1}

    escalation_id = listed["items"][0]["id"]
    response = client.post(f"/escalations/{escalation_id}/resolve", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "Resolved"
    assert client.post("/escalations/999/resolve", headers=admin_headers).status_code == 404
