"""
Subscription Routes - entitlement status, plan catalogue and account

Entitlement is resolved per request through the session's resolver, so
these endpoints work offline within the grace period.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.app_session import AppSession
from subscription.feature_gate import upgrade_message
from subscription.models import PLANS
from web_ui.api.middleware.session import get_session


router = APIRouter(prefix="/subscription", tags=["subscription"])


# ========== Pydantic Models ==========

class SubscriptionStatusResponse(BaseModel):
    user_id: str
    is_premium: bool
    plan: Optional[dict] = None
    expires_at: Optional[str] = None
    days_remaining: int
    source: str
    features: dict
    show_ads: bool


class PlanResponse(BaseModel):
    plan_id: str
    name: str
    price: float
    price_display: str
    duration_months: int
    duration_display: str
    features: List[str]
    limitations: List[str]


class TranslationsResponse(BaseModel):
    translations: List[str]
    free_translation: str


class FeatureCheckResponse(BaseModel):
    has_feature: bool
    feature_name: str
    upgrade_message: Optional[str] = None


class AccountDeletionResponse(BaseModel):
    user_id: str
    remote: Dict[str, bool]
    local: Dict[str, int]
    remote_complete: bool


# ========== Routes ==========

@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(session: AppSession = Depends(get_session)):
    """Current entitlement, where it was decided, and the resulting features"""
    status = session.entitlement_status()
    data = status.to_dict()
    return SubscriptionStatusResponse(
        user_id=status.user_id,
        is_premium=status.is_premium,
        plan=data['plan'],
        expires_at=data['expires_at'],
        days_remaining=status.days_remaining,
        source=status.source.value,
        features=session.gate.features(status.is_premium).to_dict(),
        show_ads=session.gate.should_show_ads(status.is_premium),
    )


@router.get("/plans", response_model=List[PlanResponse])
def get_plans():
    """The plan catalogue, free plan first"""
    return [PlanResponse(**plan.to_dict()) for plan in PLANS.values()]


@router.get("/translations", response_model=TranslationsResponse)
def get_translations(session: AppSession = Depends(get_session)):
    return TranslationsResponse(
        translations=session.gate.accessible_translations(session.has_premium_access()),
        free_translation=session.gate.free_translation,
    )


@router.get("/feature/{feature_name}", response_model=FeatureCheckResponse)
def check_feature(feature_name: str, session: AppSession = Depends(get_session)):
    has_feature = session.gate.has_feature(feature_name, session.has_premium_access())
    return FeatureCheckResponse(
        has_feature=has_feature,
        feature_name=feature_name,
        upgrade_message=None if has_feature else upgrade_message(feature_name),
    )


@router.post("/refresh", response_model=SubscriptionStatusResponse)
def refresh_status(session: AppSession = Depends(get_session)):
    """Drop the cached decision and resolve again"""
    session.entitlements.invalidate(session.user_id)
    return get_subscription_status(session)


@router.delete("/account", response_model=AccountDeletionResponse)
def delete_account(session: AppSession = Depends(get_session)):
    """Delete the user's payments, favorites and identity on both stores"""
    return AccountDeletionResponse(**session.delete_account().to_dict())
