"""
Core module - configuration, database, clock, and response formatting.
"""
from .clock import Clock, FixedClock, SystemClock
from .config import Settings, get_settings
from .db import AsyncSessionLocal, Base, UTCDateTime, build_engine, engine, get_session, utcnow
from .responses import ErrorCodes, ErrorDetail, ErrorResponse, error_response

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "get_session",
    "build_engine",
    "Base",
    "UTCDateTime",
    "engine",
    "AsyncSessionLocal",
    "utcnow",
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    # Responses
    "ErrorCodes",
    "ErrorDetail",
    "ErrorResponse",
    "error_response",
]
