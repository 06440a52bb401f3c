"""Monitoring and observability middleware"""
import time
from typing import Callable
from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from oeapp.utils.logger import logger


# ===== Prometheus Metrics =====

# Request metrics
http_requests_total = Counter(
    "oeapp_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "oeapp_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

# Workflow metrics
approval_decisions_total = Counter(
    "oeapp_approval_decisions_total",
    "Total approval decisions processed",
    ["action", "outcome"]  # advanced, fully_approved, rejected, conflict or the refusal reason
)

approval_requests_created_total = Counter(
    "oeapp_approval_requests_created_total",
    "Total approval requests submitted",
    ["initial_status"]
)

notifications_total = Counter(
    "oeapp_notifications_total",
    "Total outbound notifications",
    ["template", "result"]  # sent, failed
)

escalations_created_total = Counter(
    "oeapp_escalations_created_total",
    "Total escalations created by the sweep",
    ["source"]
)

# Error metrics
http_errors_total = Counter(
    "oeapp_http_errors_total",
    "Total HTTP errors",
    ["method", "endpoint", "status"]
)

authentication_failures_total = Counter(
    "oeapp_authentication_failures_total",
    "Total authentication failures",
    ["type"]  # admin, session
)


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware for monitoring and metrics collection"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics"""
        start_time = time.time()

        method = request.method
        endpoint = request.url.path

        # Add request ID for tracing
        trace_id = request.headers.get("x-request-id", f"req_{int(time.time() * 1000)}")
        request.state.trace_id = trace_id

        try:
            response = await call_next(request)
            status = response.status_code

            duration = time.time() - start_time
            http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()

            http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

            # Log slow requests
            if duration > 1.0:
                logger.warning(
                    f"Slow request detected: {method} {endpoint}",
                    extra={"status": status, "action": f"{method} {endpoint}"}
                )

            if status >= 400:
                http_errors_total.labels(
                    method=method,
                    endpoint=endpoint,
                    status=status
                ).inc()

            response.headers["X-Request-ID"] = trace_id
            response.headers["X-Response-Time"] = f"{duration:.3f}s"

            return response

        except Exception as e:
            http_errors_total.labels(
                method=method,
                endpoint=endpoint,
                status=500
            ).inc()

            logger.error(
                f"Request failed: {method} {endpoint}",
                extra={"action": f"{method} {endpoint}", "error": str(e)},
                exc_info=True
            )
            raise


def record_decision_metric(action: str, outcome: str):
    """Record an approval decision outcome"""
    approval_decisions_total.labels(action=action, outcome=outcome).inc()


def record_request_created(initial_status: str):
    """Record a submitted approval request"""
    approval_requests_created_total.labels(initial_status=initial_status).inc()


def record_notification_metric(template: str, result: str):
    """Record an outbound notification attempt"""
    notifications_total.labels(template=template, result=result).inc()


def record_escalation_metric(source: str):
    """Record an escalation created by the sweep"""
    escalations_created_total.labels(source=source).inc()


def record_auth_failure(auth_type: str):
    """Record authentication failure"""
    authentication_failures_total.labels(type=auth_type).inc()
