"""
Session dependencies for the API

The running AppSession is stored on app.state by the application lifespan
(or injected directly by tests) and handed to routes through Depends.
"""

from fastapi import Depends, HTTPException, Request, status

from core.app_session import AppSession
from subscription.feature_gate import upgrade_message


def get_session(request: Request) -> AppSession:
    """FastAPI dependency returning the current AppSession"""
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application session not initialised",
        )
    return session


def require_feature(feature_name: str):
    """
    Dependency factory to require a premium feature.

    Usage:
        @router.get("/translations/{code}")
        def read(session: AppSession = Depends(require_feature("all_translations"))):
            ...
    """
    def dependency(session: AppSession = Depends(get_session)) -> AppSession:
        if not session.gate.has_feature(feature_name, session.has_premium_access()):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"feature": feature_name, "message": upgrade_message(feature_name)},
            )
        return session

    return dependency
