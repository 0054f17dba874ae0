"""
Daily Devotional Web API - Main FastAPI Application

Thin HTTP surface over the app services:
- Devotional catalogue, reader and offline downloads
- Subscription status and plan catalogue
- Purchases through the payment gateway
- Daily reminder settings
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, settings
from core.app_session import AppSession
from core.devotional_library import ContentNotFoundError
from subscription.feature_gate import FeatureGateError
from subscription.models import UnknownPlanError
from subscription.payment_session import PaymentInProgressError
from utils.logger import logger
from web_ui.api.middleware.security_headers import SecurityHeadersMiddleware
from web_ui.api.middleware.session import get_session
from web_ui.api.routes import devotionals, favorites, notifications, payments, subscription

# Server configuration from environment
DEVOTIONAL_HOST = os.getenv("DEVOTIONAL_HOST", "localhost")
DEVOTIONAL_PORT = int(os.getenv("DEVOTIONAL_PORT", "8000"))


def _install_error_handlers(app: FastAPI):
    @app.exception_handler(FeatureGateError)
    async def feature_gate_handler(request: Request, exc: FeatureGateError):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"detail": {
                "feature": exc.feature,
                "required_tier": exc.required_tier,
                "message": exc.message,
            }},
        )

    @app.exception_handler(ContentNotFoundError)
    async def not_found_handler(request: Request, exc: ContentNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(UnknownPlanError)
    async def unknown_plan_handler(request: Request, exc: UnknownPlanError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(PaymentInProgressError)
    async def payment_in_progress_handler(request: Request, exc: PaymentInProgressError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc), "reference": exc.reference},
        )


def create_app(session: Optional[AppSession] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API.

    With no session given, the lifespan builds one from settings at
    startup and closes it at shutdown.
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = session is None
        if owned:
            app_settings.create_directories()
            app.state.session = AppSession(app_settings)
            # Restoring reminders and flushing queued writes may block on the network
            await asyncio.get_running_loop().run_in_executor(None, app.state.session.start)
        else:
            app.state.session = session
        logger.info(f"Daily Devotional API ready on http://{DEVOTIONAL_HOST}:{DEVOTIONAL_PORT}")
        yield
        if owned:
            app.state.session.close()
        logger.info("Daily Devotional API shutting down")

    app = FastAPI(
        title="Daily Devotional API",
        description="Devotional reading with subscription-gated access",
        version="1.0.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )
    # Available before the lifespan runs (tests without a context manager)
    app.state.session = session

    cors_origins = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]
    if DEVOTIONAL_HOST and DEVOTIONAL_HOST not in ["localhost", "127.0.0.1"]:
        cors_origins.append(f"http://{DEVOTIONAL_HOST}:{DEVOTIONAL_PORT}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Accept", "Authorization", "Content-Type", "Origin", "X-Requested-With"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    _install_error_handlers(app)

    app.include_router(devotionals.router, prefix="/api/v1/devotionals", tags=["Devotionals"])
    app.include_router(favorites.router, prefix="/api/v1/favorites", tags=["Favorites"])
    app.include_router(subscription.router, prefix="/api/v1", tags=["Subscription"])
    app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
    app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["Notifications"])

    @app.get("/")
    async def root():
        """API root endpoint"""
        return {
            "name": "Daily Devotional API",
            "version": "1.0.0",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    @app.post("/api/v1/lifecycle/foreground")
    def foreground(current: AppSession = Depends(get_session)):
        """Called by the client when the app returns to the foreground"""
        return {"flushed": current.on_foreground()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=DEVOTIONAL_PORT)
