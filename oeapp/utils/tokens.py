"""Signed decision-link tokens.

Approve/reject links sent by email can carry a short JWT (HS256, signed with
``DECISION_TOKEN_SECRET``) binding the request id, the step index and the
approver's email. Links are signed whenever a secret is configured; they are
only *required* when ``DECISION_TOKEN_REQUIRED`` is set. Without that flag the
public endpoint keeps accepting the approver's email address alone.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from oeapp.config import settings
from oeapp.utils.logger import logger

_ALGORITHM = "HS256"
_TOKEN_TYPE = "decision"


def create_decision_token(request_id: int, approver_email: str, step: int) -> Optional[str]:
    """Return a signed token for one approver on one step, or None when signing is off."""
    if not settings.DECISION_TOKEN_SECRET:
        return None
    now = datetime.now(timezone.utc)
    claims = {
        "type": _TOKEN_TYPE,
        "sub": approver_email.strip().lower(),
        "rid": request_id,
        "step": step,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.DECISION_TOKEN_TTL_SECONDS)).timestamp()),
    }
    return jwt.encode(claims, settings.DECISION_TOKEN_SECRET, algorithm=_ALGORITHM)


def verify_decision_token(token: Optional[str], request_id: int, approver_email: str, step: int) -> bool:
    """Check that ``token`` was issued for this request, step and approver."""
    if not token or not settings.DECISION_TOKEN_SECRET:
        return False
    try:
        claims = jwt.decode(token, settings.DECISION_TOKEN_SECRET, algorithms=[_ALGORITHM])
    except JWTError as exc:
        logger.info("Decision token rejected", extra={"request_id": request_id, "error": str(exc)})
        return False
    return (
        claims.get("type") == _TOKEN_TYPE
        and claims.get("rid") == request_id
        and claims.get("step") == step
        and claims.get("sub") == approver_email.strip().lower()
    )
