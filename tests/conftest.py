"""Pytest configuration and fixtures"""
import os

# Settings are read at import time; configure the test environment first
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["METRICS_ENABLED"] = "false"
os.environ["ESCALATION_SCHEDULER_ENABLED"] = "false"
os.environ["NOTIFICATIONS_SYNC"] = "true"
os.environ["MAIL_BACKEND"] = "log"
os.environ["DECISION_TOKEN_SECRET"] = "test-decision-secret"

from typing import Callable, Dict, Generator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from oeapp.api.deps import get_dispatcher, get_session_store
from oeapp.database import Base, get_db
from oeapp.main import app
from oeapp.models.approver import Approver, StoreResponsible
from oeapp.services.notifications import NotificationDispatcher, NotificationQueue
from oeapp.services.sessions import InMemorySessionStore, SessionRecord
from oeapp.services.workflow import ApprovalWorkflow
from oeapp.utils.permissions import FORM_OP_EXTRA_CLEANING, FORM_STORE_EXTRA_CLEANING, SYSTEM_ADMINISTRATOR

TEST_DATABASE_URL = "sqlite:///./test.db"
TEST_BASE_URL = "https://oeapp.test"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

REQUESTER_EMAIL = "store.manager@example.com"
AREA_MANAGER_EMAIL = "alice.area@example.com"
HEAD_OF_OPS_EMAIL = "omar.ops@example.com"
HR_EMAIL = "hana.hr@example.com"
OPS_VIEWER_EMAIL = "ops.viewer@example.com"
STORE = "Main Store"


class RecordingMailer:
    """Mail collaborator that records every message instead of sending it"""

    def __init__(self):
        self.sent: List[Dict] = []
        self.fail = False

    def send(self, to, template_kind, context, access_token=None):
        self.sent.append({
            "to": to,
            "template": template_kind,
            "context": dict(context),
            "access_token": access_token,
        })
        if self.fail:
            return {"success": False, "error": "mail provider unavailable"}
        return {"success": True}

    def to(self, address: str) -> List[Dict]:
        return [m for m in self.sent if m["to"] == address]


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def dispatcher(mailer: RecordingMailer) -> NotificationDispatcher:
    """Dispatcher delivering inline to the recording mailer"""
    return NotificationDispatcher(NotificationQueue(mailer, synchronous=True), base_url=TEST_BASE_URL)


@pytest.fixture
def directory(db: Session) -> Dict[str, Approver]:
    """Approver directory with one holder per role and an Area Manager for STORE"""
    people = {
        "area_manager": Approver(name="Alice Area", email=AREA_MANAGER_EMAIL, roles=["AreaManager"]),
        "head_of_ops": Approver(name="Omar Ops", email=HEAD_OF_OPS_EMAIL, roles=["HeadOfOperations"]),
        "hr": Approver(name="Hana HR", email=HR_EMAIL, roles=["HR"]),
    }
    db.add_all(people.values())
    db.commit()
    db.add(StoreResponsible(store=STORE, area_manager_id=people["area_manager"].id))
    db.commit()
    for person in people.values():
        db.refresh(person)
    return people


@pytest.fixture
def workflow(db: Session, dispatcher: NotificationDispatcher, directory) -> ApprovalWorkflow:
    return ApprovalWorkflow(db, dispatcher)


@pytest.fixture
def session_store() -> InMemorySessionStore:
    """Sessions for each kind of dashboard user, keyed by ``tok-<name>``"""
    store = InMemorySessionStore()
    store_perms = {FORM_STORE_EXTRA_CLEANING: {"can_view": True, "can_create": True}}
    store.put("tok-requester", SessionRecord(
        email=REQUESTER_EMAIL,
        display_name="Sam Store",
        roles=["StoreManager"],
        permissions=store_perms,
        access_token="delegated-graph-token",
    ))
    store.put("tok-area-manager", SessionRecord(
        email=AREA_MANAGER_EMAIL, display_name="Alice Area", roles=["AreaManager"],
    ))
    store.put("tok-head-of-ops", SessionRecord(
        email=HEAD_OF_OPS_EMAIL, display_name="Omar Ops", roles=["HeadOfOperations"],
    ))
    store.put("tok-hr", SessionRecord(email=HR_EMAIL, display_name="Hana HR", roles=["HR"]))
    store.put("tok-ops-viewer", SessionRecord(
        email=OPS_VIEWER_EMAIL,
        display_name="Olga Viewer",
        permissions={FORM_OP_EXTRA_CLEANING: {"canView": True}},
    ))
    store.put("tok-sysadmin", SessionRecord(
        email="sys.admin@example.com", display_name="Sid Admin", roles=[SYSTEM_ADMINISTRATOR],
    ))
    return store


@pytest.fixture(scope="function")
def client(
    db: Session,
    session_store: InMemorySessionStore,
    dispatcher: NotificationDispatcher,
    directory,
) -> Generator[TestClient, None, None]:
    """Create test client with database, session store and dispatcher overrides"""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    """Admin authentication headers"""
    return {"X-Admin-Key": os.getenv("ADMIN_API_KEY", "admin-secret-key-change-in-production")}


@pytest.fixture
def auth() -> Callable[[str], dict]:
    """Bearer headers for a named session, e.g. ``auth("requester")``"""

    def _headers(name: str) -> dict:
        return {"Authorization": f"Bearer tok-{name}"}

    return _headers


@pytest.fixture
def sample_request_data() -> dict:
    """Sample extra cleaning request"""
    return {
        "store": STORE,
        "category": "Cleaning",
        "third_party": "CleanCo",
        "number_of_agents": 3,
        "description": "Deep clean after renovation",
        "start_date": "2025-02-01",
        "end_date": "2025-02-03",
        "shift_hours": 9,
    }
