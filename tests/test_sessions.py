"""Tests for session stores and form permissions"""
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from conftest import TestingSessionLocal
from oeapp.models.user_session import UserSession
from oeapp.services.sessions import DatabaseSessionStore, InMemorySessionStore, SessionRecord, hash_token
from oeapp.utils.permissions import (
    FORM_OP_EXTRA_CLEANING,
    FORM_STORE_EXTRA_CLEANING,
    SYSTEM_ADMINISTRATOR,
    PermissionChecker,
)


def test_in_memory_store():
    store = InMemorySessionStore()
    store.put("abc", SessionRecord(email="a@example.com", roles=["AreaManager"]))

    record = store.get("abc")
    assert record.email == "a@example.com"
    assert record.expires_at > datetime.utcnow()
    assert store.get("other") is None

    store.delete("abc")
    assert store.get("abc") is None


def test_in_memory_store_leaves_caller_record_untouched():
    store = InMemorySessionStore()
    record = SessionRecord(email="a@example.com")
    store.put("abc", record)

    assert record.expires_at is None
    assert store.get("abc").expires_at is not None


def test_in_memory_store_drops_expired_sessions():
    store = InMemorySessionStore()
    store.put("old", SessionRecord(email="a@example.com", expires_at=datetime.utcnow() - timedelta(seconds=1)))
    assert store.get("old") is None


def test_database_store(db: Session):
    store = DatabaseSessionStore(TestingSessionLocal)
    store.put("db-token", SessionRecord(
        email="b@example.com",
        display_name="Bea",
        roles=["HR"],
        permissions={FORM_STORE_EXTRA_CLEANING: {"can_view": True}},
        access_token="graph-token",
    ))

    # Tokens are stored hashed
    row = db.query(UserSession).one()
    assert row.token_hash == hash_token("db-token")
    assert row.token_hash != "db-token"

    record = store.get("db-token")
    assert record.email == "b@example.com"
    assert record.roles == ["HR"]
    assert record.access_token == "graph-token"
    assert record.checker().can_access(FORM_STORE_EXTRA_CLEANING)

    store.delete("db-token")
    assert store.get("db-token") is None


def test_database_store_ignores_expired(db: Session):
    store = DatabaseSessionStore(TestingSessionLocal)
    store.put("stale", SessionRecord(email="c@example.com", expires_at=datetime.utcnow() - timedelta(minutes=5)))
    assert store.get("stale") is None


def test_permission_checker():
    checker = PermissionChecker(
        {
            FORM_STORE_EXTRA_CLEANING: {"can_view": True, "can_create": True},
            FORM_OP_EXTRA_CLEANING: {"canView": True, "canEdit": False},
        },
        roles=["StoreManager"],
    )
    assert checker.can_access(FORM_STORE_EXTRA_CLEANING)
    assert checker.can_access(FORM_STORE_EXTRA_CLEANING, "create")
    assert not checker.can_access(FORM_STORE_EXTRA_CLEANING, "delete")
    assert checker.can_access(FORM_OP_EXTRA_CLEANING, "view")
    assert not checker.can_access(FORM_OP_EXTRA_CLEANING, "edit")
    assert not checker.can_access("UNKNOWN_FORM")
    assert not checker.can_access(FORM_STORE_EXTRA_CLEANING, "approve")

    assert checker.has_role("StoreManager")
    assert not checker.has_role("HR")


def test_system_administrator_passes_every_form_check():
    checker = PermissionChecker({}, roles=[SYSTEM_ADMINISTRATOR])
    assert checker.can_access(FORM_OP_EXTRA_CLEANING)
    assert checker.can_access(FORM_STORE_EXTRA_CLEANING, "delete")
    assert not PermissionChecker({}, roles=["AreaManager"]).can_access(FORM_OP_EXTRA_CLEANING)
