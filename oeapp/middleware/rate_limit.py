"""Rate limiting middleware for API protection"""
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from fastapi import Request
from oeapp.config import settings


def get_identifier(request: Request) -> str:
    """
    Get identifier for rate limiting based on authentication

    Priority:
    1. Session token (authenticated dashboard users)
    2. Admin key
    3. IP address (email-link visitors)
    """
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return f"session:{auth[7:19]}"

    admin_key = request.headers.get("x-admin-key")
    if admin_key == settings.ADMIN_API_KEY:
        return "admin:authenticated"

    return get_remote_address(request)


# Create limiter instance
limiter = Limiter(
    key_func=get_identifier,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


# Rate limit configurations for different endpoints
RATE_LIMITS = {
    # Email-link endpoints are unauthenticated
    "public_view": "60/minute",
    "public_decision": "20/minute",

    # Authenticated endpoints
    "decision": "60/minute",
    "submit": "30/minute",

    # Admin endpoints
    "admin_write": "50/hour",
    "escalation_run": "10/hour",
}


def get_rate_limit(endpoint: str) -> str:
    """Get rate limit for specific endpoint"""
    return RATE_LIMITS.get(endpoint, settings.RATE_LIMIT_DEFAULT[0])
