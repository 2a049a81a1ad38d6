"""
Core module for the Travel Voice API.
Contains configuration, database, security, and middleware.
"""

from .config import settings
from .database import engine, get_db, async_session_factory
from .security import (
    create_access_token,
    create_refresh_token,
    verify_token,
    get_password_hash,
    verify_password,
    get_current_user,
    get_current_admin,
)
from .middleware import RequestContextMiddleware, SecurityHeadersMiddleware, limiter

__all__ = [
    "settings",
    "engine",
    "get_db",
    "async_session_factory",
    "create_access_token",
    "create_refresh_token",
    "verify_token",
    "get_password_hash",
    "verify_password",
    "get_current_user",
    "get_current_admin",
    "RequestContextMiddleware",
    "SecurityHeadersMiddleware",
    "limiter",
]
