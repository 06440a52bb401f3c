"""Tests for the approval chain value object"""
import json
from datetime import datetime

import pytest

from oeapp.utils.chain import (
    STEP_APPROVED,
    STEP_REJECTED,
    ApprovalChain,
    ApprovalStep,
    ApproverIdentity,
    role_display_name,
)


def _chain() -> ApprovalChain:
    return ApprovalChain([
        ApprovalStep(role="AreaManager", approver=ApproverIdentity(1, "Alice Area", "Alice.Area@example.com")),
        ApprovalStep(role="HeadOfOperations", approver=ApproverIdentity(2, "Omar Ops", "omar.ops@example.com")),
    ])


def test_undecided_steps_serialize_without_status():
    data = _chain().to_list()
    assert data[0] == {"role": "AreaManager", "id": 1, "name": "Alice Area", "email": "Alice.Area@example.com"}
    assert "status" not in data[1]


def test_with_decision_returns_new_chain():
    chain = _chain()
    decided_at = datetime(2025, 1, 5, 9, 12)
    decided = chain.with_decision(0, STEP_APPROVED, None, decided_at)

    assert chain[0].status is None
    assert decided[0].status == STEP_APPROVED
    assert decided[0].comments == ""
    assert decided.to_list()[0]["approvedAt"] == "2025-01-05T09:12:00"
    assert decided[1] == chain[1]


def test_deciding_a_decided_step_fails():
    decided = _chain().with_decision(0, STEP_APPROVED, "ok", datetime.utcnow())
    with pytest.raises(ValueError):
        decided.with_decision(0, STEP_REJECTED, "changed my mind", datetime.utcnow())
    with pytest.raises(IndexError):
        decided.with_decision(5, STEP_APPROVED, None, datetime.utcnow())


def test_json_round_trip_keeps_decisions():
    decided = _chain().with_decision(0, STEP_REJECTED, "insufficient budget", datetime(2025, 1, 5, 9, 12))
    restored = ApprovalChain.from_json(decided.to_json())
    assert restored == decided
    assert restored.roles == ["AreaManager", "HeadOfOperations"]


def test_legacy_pending_status_is_read_as_undecided():
    raw = json.dumps([
        {"role": "AreaManager", "id": "7", "name": "A", "email": "a@example.com", "status": "Pending"},
    ])
    chain = ApprovalChain.from_json(raw)
    assert chain[0].status is None
    assert not chain[0].is_decided


def test_is_held_by_ignores_case_and_whitespace():
    step = _chain()[0]
    assert step.is_held_by(" alice.area@EXAMPLE.com ")
    assert not step.is_held_by("omar.ops@example.com")
    assert not step.is_held_by(None)


def test_violations():
    chain = _chain()
    assert chain.violations(0, terminal=False) == []

    approved = chain.with_decision(0, STEP_APPROVED, None, datetime.utcnow())
    assert approved.violations(1, terminal=False) == []
    assert approved.violations(0, terminal=False)

    rejected = chain.with_decision(0, STEP_REJECTED, "no", datetime.utcnow())
    assert rejected.violations(0, terminal=True) == []


def test_empty_and_invalid_json():
    assert ApprovalChain.from_json(None).is_empty
    assert ApprovalChain.from_json("[]").is_empty
    with pytest.raises(ValueError):
        ApprovalChain.from_json('{"role": "AreaManager"}')


def test_role_display_name():
    assert role_display_name("HeadOfOperations") == "Head of Operations"
    assert role_display_name("Dashboard") == "Dashboard"
    assert role_display_name(None) == "next approver"
