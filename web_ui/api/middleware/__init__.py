"""
Daily Devotional API Middleware

Session dependencies and security headers for the FastAPI application.
"""

from .session import get_session, require_feature
from .security_headers import SecurityHeadersMiddleware

__all__ = [
    "get_session",
    "require_feature",
    "SecurityHeadersMiddleware",
]
