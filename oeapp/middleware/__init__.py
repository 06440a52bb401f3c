"""Middleware modules for production-ready features"""
from oeapp.middleware.monitoring import (
    MonitoringMiddleware,
    record_auth_failure,
    record_decision_metric,
    record_escalation_metric,
    record_notification_metric,
    record_request_created,
)
from oeapp.middleware.rate_limit import get_rate_limit, limiter

__all__ = [
    "MonitoringMiddleware",
    "record_auth_failure",
    "record_decision_metric",
    "record_escalation_metric",
    "record_notification_metric",
    "record_request_created",
    "limiter",
    "get_rate_limit"
]
