"""FastAPI application entry point"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator

from oeapp.api import admin, approvers, escalations, health, public, requests
from oeapp.config import settings
from oeapp.database import SessionLocal
from oeapp.errors import (
    AlreadyFinalized,
    InvalidDecisionToken,
    NotCurrentApprover,
    PersistenceConflict,
    RequestNotFound,
    WorkflowError,
)
from oeapp.middleware.rate_limit import limiter
from oeapp.services.mailer import build_mailer
from oeapp.services.notifications import NotificationDispatcher, NotificationQueue
from oeapp.services.scheduler import EscalationScheduler
from oeapp.services.sessions import DatabaseSessionStore
from oeapp.utils.logger import logger, setup_logging

# Setup logging
setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

# Collaborators shared by all requests
outbound = NotificationQueue(build_mailer(), synchronous=settings.NOTIFICATIONS_SYNC)
dispatcher = NotificationDispatcher(outbound)
scheduler = EscalationScheduler(dispatcher)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("OE approvals service starting up", extra={
        "version": "0.1.0",
        "environment": settings.HOST,
        "log_level": settings.LOG_LEVEL,
        "rate_limiting": settings.RATE_LIMIT_ENABLED,
        "monitoring": settings.METRICS_ENABLED,
        "mail_backend": settings.MAIL_BACKEND,
    })
    outbound.start()
    if settings.ESCALATION_SCHEDULER_ENABLED:
        await scheduler.start()
    yield
    # Shutdown
    if settings.ESCALATION_SCHEDULER_ENABLED:
        await scheduler.stop()
    outbound.stop()
    logger.info("OE approvals service shutting down")


# Create FastAPI app
app = FastAPI(
    title="OE Approvals",
    description="Approval-chain workflow for Operational Excellence extra cleaning requests",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.state.outbound = outbound
app.state.dispatcher = dispatcher
app.state.session_store = DatabaseSessionStore(SessionLocal)
app.state.limiter = limiter

# ===== Middleware Setup =====

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Monitoring middleware
if settings.METRICS_ENABLED:
    from oeapp.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    # Prometheus metrics
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="oeapp_requests_inprogress",
        inprogress_labels=True
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors"""
    logger.warning(
        "Rate limit exceeded",
        extra={"action": f"{request.method} {request.url.path}"}
    )
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please try again later.",
            "detail": str(exc.detail)
        }
    )

# ===== Route Setup =====

# Include routers
app.include_router(health.router)
app.include_router(requests.router)
app.include_router(public.router)
app.include_router(approvers.router)
app.include_router(admin.router)
app.include_router(escalations.router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "oeapp-approvals",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
    }


# ===== Error Handlers =====

_WORKFLOW_STATUS = {
    RequestNotFound: 404,
    AlreadyFinalized: 409,
    NotCurrentApprover: 403,
    InvalidDecisionToken: 403,
    PersistenceConflict: 503,
}


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Map workflow errors to ``{success: false, error, message}`` responses"""
    status_code = _WORKFLOW_STATUS.get(type(exc), 400)
    content = {
        "success": False,
        "error": exc.code,
        "message": exc.message,
    }
    if isinstance(exc, AlreadyFinalized):
        content["status"] = exc.status
    if isinstance(exc, PersistenceConflict):
        content["message"] = "The request was updated by someone else. Please reload and try again."
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={"action": f"{request.method} {request.url.path}"},
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please contact support."
        }
    )
