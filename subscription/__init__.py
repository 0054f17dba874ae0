"""
Subscription system for the devotional app

Entitlement is derived from payment records, never stored:
- Local-first resolution (works offline)
- Cloud-verified refresh when nothing active is found locally
- Bounded offline grace when the cloud is unreachable
- Binary access: premium unlocks everything, free keeps the free-day baseline

Import the service modules (entitlement, payment_session, sync_queue,
account) directly; they depend on the storage backends.
"""

from subscription.models import (
    SubscriptionTier,
    SubscriptionPlan,
    PaymentStatus,
    PaymentRecord,
    FeatureAccess,
    PLANS,
    UnknownPlanError,
    get_plan,
    paid_plans,
)
from subscription.feature_gate import (
    AccessLevel,
    ContentGate,
    FeatureGateError,
    feature_required,
    upgrade_message,
)

__all__ = [
    'SubscriptionTier',
    'SubscriptionPlan',
    'PaymentStatus',
    'PaymentRecord',
    'FeatureAccess',
    'PLANS',
    'UnknownPlanError',
    'get_plan',
    'paid_plans',
    'AccessLevel',
    'ContentGate',
    'FeatureGateError',
    'feature_required',
    'upgrade_message',
]
