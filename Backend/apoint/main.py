import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .audit import SqlAuditRecorder
from .availability_admin import router as availability_router
from .background import PeriodicTask, ReminderCycle, SchedulerConfig
from .booking_api import router as booking_router
from .core.clock import SystemClock
from .core.config import get_settings
from .core.db import AsyncSessionLocal, Base, engine
from .core.responses import ErrorCodes, error_response
from .emailer import ResendConfig
from .errors import BookingEngineError
from .notifications import EmailNotificationGateway
from .rate_limiter import RateLimiter, RateLimitExceeded
from .reminders import ReminderDispatcher
from .repositories.sql import SqlSchedulingStore


settings = get_settings()
app = FastAPI(title="Apoint Booking Engine")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.rate_limiter = RateLimiter(
    max_requests=settings.public_rate_limit_max,
    window_seconds=settings.public_rate_limit_window_seconds,
)
app.state.notifications = EmailNotificationGateway(
    ResendConfig(api_key=settings.resend_api_key, sender=settings.resend_from)
)
app.state.audit = SqlAuditRecorder(AsyncSessionLocal)
app.state.clock = SystemClock()

app.include_router(booking_router)
app.include_router(availability_router)


# ────────────────────────────────────────────────────────────────
# Error handlers
# ────────────────────────────────────────────────────────────────

@app.exception_handler(BookingEngineError)
async def booking_engine_error_handler(request: Request, exc: BookingEngineError):
    details = dict(exc.details)
    if exc.retryable:
        details["retryable"] = True
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, details),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content=error_response(
            ErrorCodes.RATE_LIMITED,
            str(exc),
            {"retry_after": exc.retry_after},
        ),
        headers=exc.headers,
    )


# ────────────────────────────────────────────────────────────────
# Reminder scheduler
# ────────────────────────────────────────────────────────────────

@asynccontextmanager
async def scheduling_store():
    async with AsyncSessionLocal() as session:
        yield SqlSchedulingStore(session)


def build_reminder_dispatcher(store) -> ReminderDispatcher:
    return ReminderDispatcher(
        store,
        notifications=app.state.notifications,
        audit=app.state.audit,
        clock=app.state.clock,
    )


reminder_task = PeriodicTask(
    "Reminder scheduler",
    ReminderCycle(scheduling_store, build_reminder_dispatcher),
    SchedulerConfig(
        enabled=settings.reminders_auto_enabled,
        interval_seconds=settings.reminders_run_interval_seconds,
    ),
)


@app.on_event("startup")
async def on_startup():
    logging.basicConfig(level=settings.log_level.upper())
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    reminder_task.start()


@app.on_event("shutdown")
async def on_shutdown():
    await reminder_task.stop()


@app.get("/health")
async def health():
    return {"status": "ok"}
