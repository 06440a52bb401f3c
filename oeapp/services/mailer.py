"""Outbound mail collaborator.

``send(to, template_kind, context, access_token=None)`` renders one of the
notification templates and delivers it, returning ``{"success": bool,
"error": str}``. It never raises; callers only inspect the result.

Backends:
  graph : Microsoft Graph ``sendMail``. Uses the caller's delegated token when
           one is supplied (``/me/sendMail``), otherwise an application token
           obtained with the client-credentials flow (``/users/{from}/sendMail``).
  log   : logs the rendered subject and recipient; for development.
"""
import threading
import time
from html import escape
from typing import Any, Dict, Mapping, Optional, Tuple

import requests

from oeapp.config import settings
from oeapp.utils.chain import role_display_name
from oeapp.utils.logger import logger

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"

TEMPLATE_APPROVAL_REQUEST = "approval_request"
TEMPLATE_STATUS_UPDATE = "status_update"
TEMPLATE_ESCALATION = "escalation"
TEMPLATE_DEADLINE_REMINDER = "deadline_reminder"

_FOOTER = (
    "<p style=\"color:#666;font-size:12px\">This is an automated message from the "
    "Operational Excellence Application. Please do not reply to this email.</p>"
)


def _v(context: Mapping[str, Any], key: str, default: str = "N/A") -> str:
    value = context.get(key)
    return escape(str(value)) if value not in (None, "") else default


def _rows(pairs) -> str:
    return "".join(
        f"<tr><td style=\"font-weight:600;color:#666;padding:4px 12px 4px 0\">{label}</td><td>{value}</td></tr>"
        for label, value in pairs
    )


def _approval_request(context: Mapping[str, Any]) -> Tuple[str, str]:
    subject = f"Extra Cleaning Request Pending Your Approval - {context.get('store') or 'Unknown Store'}"
    body = (
        f"<p>Hello,</p><p>An Extra Cleaning request requires your approval as "
        f"<strong>{escape(role_display_name(context.get('role')))}</strong>:</p>"
        "<table>" + _rows([
            ("Request", f"#{_v(context, 'request_id')}"),
            ("Store", _v(context, "store")),
            ("Category", _v(context, "category")),
            ("Third Party", _v(context, "third_party")),
            ("No. of Agents", _v(context, "number_of_agents")),
            ("Requested By", _v(context, "submitted_by")),
            ("Start Date", _v(context, "start_date")),
            ("End Date", _v(context, "end_date")),
            ("Description", _v(context, "description")),
        ]) + "</table>"
        f"<p><a href=\"{escape(context.get('approve_url', ''))}\">Approve</a> | "
        f"<a href=\"{escape(context.get('reject_url', ''))}\">Reject</a> | "
        f"<a href=\"{escape(context.get('view_url', ''))}\">View Details</a></p>"
        + _FOOTER
    )
    return subject, body


def _status_update(context: Mapping[str, Any]) -> Tuple[str, str]:
    outcome = str(context.get("outcome", "updated"))
    subject = f"Extra Cleaning Request {outcome.capitalize()} - {context.get('store') or 'Request'}"
    comments = context.get("comments")
    body = (
        f"<p>Your Extra Cleaning request #{_v(context, 'request_id')} for "
        f"<strong>{_v(context, 'store', 'Unknown Store')}</strong> has been "
        f"<strong>{escape(outcome)}</strong> by {escape(role_display_name(context.get('decided_by_role')))}.</p>"
        + (f"<p><strong>Comments:</strong> {escape(str(comments))}</p>" if comments else "")
        + f"<p><a href=\"{escape(context.get('view_url', ''))}\">View Request Details</a></p>"
        + _FOOTER
    )
    return subject, body


def _escalation(context: Mapping[str, Any]) -> Tuple[str, str]:
    subject = f"Overdue: {context.get('store') or 'Unknown Store'} - {context.get('reference') or ''}".rstrip(" -")
    body = (
        f"<p>Dear {_v(context, 'recipient_name', 'colleague')},</p>"
        f"<p>The following item has exceeded its deadline and requires your attention:</p>"
        "<table>" + _rows([
            ("Item", _v(context, "reference")),
            ("Store", _v(context, "store")),
            ("Reason", _v(context, "reason")),
        ]) + "</table>"
        f"<p><a href=\"{escape(context.get('link', ''))}\">Open item</a></p>"
        + _FOOTER
    )
    return subject, body


def _deadline_reminder(context: Mapping[str, Any]) -> Tuple[str, str]:
    days = context.get("days_before")
    plural = "s" if days != 1 else ""
    subject = f"Action Plan Deadline in {days} Day{plural} - {context.get('store') or ''}".rstrip(" -")
    body = (
        f"<p>The action plan {_v(context, 'reference')} at {_v(context, 'store')} is due in "
        f"{escape(str(days))} day{plural}. Please complete it before the deadline.</p>"
        f"<p><a href=\"{escape(context.get('link', ''))}\">Open action plan</a></p>"
        + _FOOTER
    )
    return subject, body


TEMPLATES = {
    TEMPLATE_APPROVAL_REQUEST: _approval_request,
    TEMPLATE_STATUS_UPDATE: _status_update,
    TEMPLATE_ESCALATION: _escalation,
    TEMPLATE_DEADLINE_REMINDER: _deadline_reminder,
}


def render(template_kind: str, context: Mapping[str, Any]) -> Tuple[str, str]:
    """Return ``(subject, html_body)`` for a template kind."""
    try:
        renderer = TEMPLATES[template_kind]
    except KeyError:
        raise ValueError(f"Unknown email template: {template_kind}")
    return renderer(context)


class LogMailer:
    """Development backend: logs instead of sending"""

    def send(
        self,
        to: str,
        template_kind: str,
        context: Mapping[str, Any],
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            subject, _ = render(template_kind, context)
        except ValueError as exc:
            return {"success": False, "error": str(exc)}
        logger.info(f"Email (log backend) to {to}: {subject}", extra={"template": template_kind})
        return {"success": True}


class GraphMailer:
    """Microsoft Graph backend"""

    def __init__(
        self,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        from_address: Optional[str] = None,
        timeout: Optional[int] = None,
        http: Optional[requests.Session] = None,
    ):
        self.tenant_id = tenant_id or settings.AZURE_TENANT_ID
        self.client_id = client_id or settings.AZURE_CLIENT_ID
        self.client_secret = client_secret or settings.AZURE_CLIENT_SECRET
        self.from_address = from_address or settings.MAIL_FROM
        self.timeout = timeout or settings.MAIL_TIMEOUT
        self.http = http or requests.Session()
        self._app_token: Optional[str] = None
        self._app_token_expires = 0.0
        self._lock = threading.Lock()

    def _get_app_token(self) -> str:
        """Client-credentials token, cached until a minute before expiry."""
        with self._lock:
            if self._app_token and time.time() < self._app_token_expires:
                return self._app_token

            if not (self.tenant_id and self.client_id and self.client_secret):
                raise RuntimeError("Azure AD credentials not configured")

            resp = self.http.post(
                TOKEN_URL.format(tenant=self.tenant_id),
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": "https://graph.microsoft.com/.default",
                    "grant_type": "client_credentials",
                },
                timeout=self.timeout,
            )
            if resp.status_code != 200:
                raise RuntimeError(f"Failed to get app token: {resp.status_code} - {resp.text}")
            data = resp.json()
            self._app_token = data["access_token"]
            self._app_token_expires = time.time() + int(data.get("expires_in", 3600)) - 60
            return self._app_token

    def send(
        self,
        to: str,
        template_kind: str,
        context: Mapping[str, Any],
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            subject, body = render(template_kind, context)
            message = {
                "message": {
                    "subject": subject,
                    "body": {"contentType": "HTML", "content": body},
                    "toRecipients": [{"emailAddress": {"address": to}}],
                },
                "saveToSentItems": True,
            }

            if access_token:
                url = f"{GRAPH_BASE_URL}/me/sendMail"
                token = access_token
            else:
                url = f"{GRAPH_BASE_URL}/users/{self.from_address}/sendMail"
                token = self._get_app_token()

            resp = self.http.post(
                url,
                json=message,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            if resp.status_code >= 300:
                return {"success": False, "error": f"Graph API error {resp.status_code}: {resp.text}"}

            logger.debug(f"Email sent to {to}", extra={"template": template_kind})
            return {"success": True}
        except Exception as exc:
            return {"success": False, "error": str(exc)}


def build_mailer():
    """Return the mail backend selected by ``MAIL_BACKEND``."""
    if settings.MAIL_BACKEND == "graph":
        return GraphMailer()
    return LogMailer()
