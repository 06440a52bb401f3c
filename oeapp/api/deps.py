"""API dependencies for authentication and authorization.

Two callers reach this API:
  - Dashboard users: ``Authorization: Bearer <session token>``, looked up in
    the session store configured on ``app.state.session_store``.
  - Administrators: ``X-Admin-Key`` header for configuration and escalation
    endpoints.

Email-link endpoints are unauthenticated; the decision workflow itself checks
the acting email against the current step.
"""
from typing import Callable, List, NamedTuple, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from oeapp.config import settings
from oeapp.database import get_db
from oeapp.middleware.monitoring import record_auth_failure
from oeapp.services.escalation import EscalationService
from oeapp.services.notifications import NotificationDispatcher
from oeapp.services.sessions import SessionStore
from oeapp.services.workflow import ApprovalWorkflow
from oeapp.utils.permissions import PermissionChecker

_bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser(NamedTuple):
    """Resolved session identity, populated by :func:`get_current_user`."""
    email: str
    display_name: Optional[str]
    roles: List[str]
    access_token: Optional[str]   # delegated mail credential, if the login flow stored one
    permissions: PermissionChecker


# ---------------------------------------------------------------------------
# Application collaborators
# ---------------------------------------------------------------------------

def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_workflow(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ApprovalWorkflow:
    return ApprovalWorkflow(db, dispatcher)


def get_escalation_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> EscalationService:
    return EscalationService(db, dispatcher)


# ---------------------------------------------------------------------------
# Session users
# ---------------------------------------------------------------------------

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    store: SessionStore = Depends(get_session_store),
) -> CurrentUser:
    """Require a live dashboard session.

    Raises 401 when no bearer token is sent or the session is unknown or expired.
    """
    if not credentials:
        record_auth_failure("session")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated. Please login to access this resource.",
        )

    record = store.get(credentials.credentials)
    if record is None:
        record_auth_failure("session")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired or invalid. Please login again.",
        )

    return CurrentUser(
        email=record.email,
        display_name=record.display_name,
        roles=list(record.roles),
        access_token=record.access_token,
        permissions=record.checker(),
    )


def require_permission(form_code: str, action: str = "view") -> Callable:
    """Return a FastAPI dependency that enforces form access.

    Usage::

        @router.post("")
        def endpoint(user: CurrentUser = Depends(require_permission("STORE_EXTRA_CLEANING", "create"))):
            ...
    """

    def _permission_dep(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.permissions.can_access(form_code, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"You do not have {action} access to {form_code}",
            )
        return user

    # Give FastAPI a unique name so it doesn't collapse distinct dependencies
    _permission_dep.__name__ = f"require_{form_code.lower()}_{action.lower()}"
    return _permission_dep


# ---------------------------------------------------------------------------
# Administrators
# ---------------------------------------------------------------------------

def require_admin(x_admin_key: Optional[str] = Header(None)) -> str:
    """Require the ``X-Admin-Key`` header."""
    if not x_admin_key:
        record_auth_failure("admin")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Provide X-Admin-Key header.",
        )
    if x_admin_key != settings.ADMIN_API_KEY:
        record_auth_failure("admin")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )
    return "admin"
