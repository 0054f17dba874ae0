"""
Security Headers Middleware for the Daily Devotional API

Adds baseline security headers to every response. Production mode
(DEVOTIONAL_ENV=production) also enables HSTS and a strict CSP.
"""

import os
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware that adds security headers to all HTTP responses."""

    def __init__(self, app, enable_hsts: bool = None):
        super().__init__(app)

        env = os.getenv("DEVOTIONAL_ENV", "development").lower()
        self.is_production = env in ("production", "prod")

        # HSTS only makes sense behind HTTPS
        if enable_hsts is None:
            self.enable_hsts = self.is_production
        else:
            self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "camera=(), geolocation=(), microphone=(), usb=()"
        )

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        if self.is_production:
            csp_directives = [
                "default-src 'self'",
                "script-src 'self'",
                "style-src 'self' 'unsafe-inline'",
                "img-src 'self' data: https:",
                # Paystack checkout and the Supabase REST endpoint
                "connect-src 'self' https://api.paystack.co https://*.supabase.co",
                "frame-src https://checkout.paystack.com",
                "frame-ancestors 'none'",
                "object-src 'none'",
            ]
        else:
            csp_directives = [
                "default-src 'self'",
                "script-src 'self' 'unsafe-inline' 'unsafe-eval'",
                "style-src 'self' 'unsafe-inline'",
                "img-src 'self' data: https: blob:",
                "connect-src 'self' ws: wss: https:",
                "frame-src https:",
                "frame-ancestors 'self'",
            ]
        response.headers["Content-Security-Policy"] = "; ".join(csp_directives)

        return response
