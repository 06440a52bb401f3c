"""Tests for mail rendering, the Graph backend and the notification queue"""
import pytest

from conftest import RecordingMailer
from oeapp.services.mailer import (
    TEMPLATE_APPROVAL_REQUEST,
    TEMPLATE_ESCALATION,
    TEMPLATE_STATUS_UPDATE,
    GraphMailer,
    LogMailer,
    render,
)
from oeapp.services.notifications import NotificationDispatcher, NotificationQueue, OutboundMessage


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = ""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class FakeHTTP:
    """Stands in for ``requests.Session``; records every POST"""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.responses.pop(0)


class ExplodingMailer:
    def send(self, to, template_kind, context, access_token=None):
        raise ConnectionError("smtp relay down")


def test_render_approval_request_escapes_values():
    subject, body = render(TEMPLATE_APPROVAL_REQUEST, {
        "store": "Main Store",
        "category": "Cleaning",
        "description": "<script>alert(1)</script>",
        "approve_url": "https://oeapp.test/public/approve/1?action=approve",
        "role": "AreaManager",
    })
    assert subject == "Extra Cleaning Request Pending Your Approval - Main Store"
    assert "<script>" not in body
    assert "&lt;script&gt;" in body
    assert "public/approve/1?action=approve" in body


def test_render_status_update_includes_comments():
    subject, body = render(TEMPLATE_STATUS_UPDATE, {
        "store": "Main Store",
        "request_id": 7,
        "outcome": "rejected",
        "decided_by_role": "HeadOfOperations",
        "comments": "insufficient budget",
    })
    assert subject == "Extra Cleaning Request Rejected - Main Store"
    assert "insufficient budget" in body
    assert "Head of Operations" in body


def test_render_unknown_template():
    with pytest.raises(ValueError):
        render("newsletter", {})
    assert LogMailer().send("a@example.com", "newsletter", {})["success"] is False


def test_graph_mailer_uses_delegated_token():
    http = FakeHTTP([FakeResponse(202)])
    mailer = GraphMailer(http=http)

    result = mailer.send("a@example.com", TEMPLATE_ESCALATION, {"store": "Main Store"}, access_token="user-token")

    assert result == {"success": True}
    url, kwargs = http.calls[0]
    assert url.endswith("/me/sendMail")
    assert kwargs["headers"]["Authorization"] == "Bearer user-token"
    assert kwargs["json"]["message"]["toRecipients"] == [{"emailAddress": {"address": "a@example.com"}}]


def test_graph_mailer_caches_app_token():
    http = FakeHTTP([
        FakeResponse(200, {"access_token": "app-token", "expires_in": 3600}),
        FakeResponse(202),
        FakeResponse(202),
    ])
    mailer = GraphMailer(
        tenant_id="tenant", client_id="client", client_secret="secret",
        from_address="noreply@example.com", http=http,
    )

    assert mailer.send("a@example.com", TEMPLATE_ESCALATION, {})["success"]
    assert mailer.send("b@example.com", TEMPLATE_ESCALATION, {})["success"]

    urls = [url for url, _ in http.calls]
    assert "oauth2/v2.0/token" in urls[0]
    assert urls[1].endswith("/users/noreply@example.com/sendMail")
    assert len(urls) == 3
    assert http.calls[2][1]["headers"]["Authorization"] == "Bearer app-token"


def test_graph_mailer_reports_failures():
    http = FakeHTTP([FakeResponse(403, text="Forbidden")])
    result = GraphMailer(http=http).send("a@example.com", TEMPLATE_ESCALATION, {}, access_token="t")
    assert result["success"] is False
    assert "403" in result["error"]

    # No delegated token and no app credentials
    result = GraphMailer(tenant_id="", client_id="", client_secret="", http=FakeHTTP([])).send(
        "a@example.com", TEMPLATE_ESCALATION, {},
    )
    assert result["success"] is False


def test_queue_swallows_delivery_errors():
    queue = NotificationQueue(ExplodingMailer(), synchronous=True)
    assert queue.deliver(OutboundMessage(to="a@example.com", template=TEMPLATE_ESCALATION)) is False

    failing = RecordingMailer()
    failing.fail = True
    queue = NotificationQueue(failing, synchronous=True)
    queue.enqueue(OutboundMessage(to="a@example.com", template=TEMPLATE_ESCALATION))
    assert len(failing.sent) == 1


def test_background_worker_delivers_in_order():
    mailer = RecordingMailer()
    queue = NotificationQueue(mailer)
    queue.start()
    try:
        assert queue.is_running
        for n in range(3):
            queue.enqueue(OutboundMessage(to=f"user{n}@example.com", template=TEMPLATE_ESCALATION))
        queue.join()
    finally:
        queue.stop()

    assert [m["to"] for m in mailer.sent] == ["user0@example.com", "user1@example.com", "user2@example.com"]
    assert not queue.is_running


def test_dispatcher_skips_requests_without_recipient():
    mailer = RecordingMailer()
    dispatcher = NotificationDispatcher(NotificationQueue(mailer, synchronous=True), base_url="https://oeapp.test/")

    class Finished:
        id = 1
        current_approver_email = None
        created_by_email = ""

    dispatcher.on_advance(Finished())
    dispatcher.on_terminal(Finished(), "FullyApproved")
    assert mailer.sent == []
    assert dispatcher.view_url(5) == "https://oeapp.test/stores/extra-cleaning/view/5"
