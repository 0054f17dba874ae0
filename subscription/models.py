"""
Subscription Data Models

Defines the core data structures for the subscription system:
plans, payment records and the binary free/premium feature access.
"""

import calendar
import json
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from uuid import uuid4


class SubscriptionTier(str, Enum):
    """
    Subscription tiers.

    Every paid tier unlocks the same premium feature set; tiers only
    differ in price and validity duration.
    """
    FREE = "free"
    THREE_MONTHS = "three_months"
    SIX_MONTHS = "six_months"
    YEARLY = "yearly"


class PaymentStatus(str, Enum):
    """Payment record status states"""
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class SubscriptionPlan:
    """A named purchase option with a fixed price and validity duration"""
    plan_id: str
    tier: SubscriptionTier
    name: str
    price: float
    duration_months: int
    features: List[str] = field(default_factory=list)
    limitations: List[str] = field(default_factory=list)

    @property
    def is_free(self) -> bool:
        return self.duration_months == 0

    @property
    def price_display(self) -> str:
        return "Free" if self.price == 0 else f"${self.price:.2f}"

    @property
    def duration_display(self) -> str:
        if self.duration_months == 0:
            return "Forever"
        if self.duration_months == 12:
            return "1 Year"
        return f"{self.duration_months} Months"

    @property
    def price_per_month(self) -> float:
        return 0.0 if self.duration_months == 0 else self.price / self.duration_months

    def expires_at(self, purchased_at: datetime) -> datetime:
        return add_months(ensure_utc(purchased_at), self.duration_months)

    def to_dict(self) -> dict:
        return {
            'plan_id': self.plan_id,
            'tier': self.tier.value,
            'name': self.name,
            'price': self.price,
            'price_display': self.price_display,
            'duration_months': self.duration_months,
            'duration_display': self.duration_display,
            'price_per_month': round(self.price_per_month, 2),
            'features': list(self.features),
            'limitations': list(self.limitations),
        }


_PREMIUM_FEATURES = [
    'Access to ALL devotionals',
    'Offline devotional downloads',
    'All Bible translations',
    'Priority support',
    'Screenshot permission',
    'Ad-free experience',
]

PLANS: Dict[str, SubscriptionPlan] = {
    plan.plan_id: plan for plan in (
        SubscriptionPlan(
            plan_id='free',
            tier=SubscriptionTier.FREE,
            name='Free Plan',
            price=0.0,
            duration_months=0,
            features=[
                'Sunday devotionals access',
                'ASV Bible translation only',
                'Basic Bible reading features',
                'Search functionality',
            ],
            limitations=[
                'No offline devotional downloads',
                'Limited to Sunday devotionals only',
                'Only one Bible translation (ASV)',
                'No access to weekday devotionals',
                'Inability to screenshot devotionals',
            ],
        ),
        SubscriptionPlan(
            plan_id='three_months',
            tier=SubscriptionTier.THREE_MONTHS,
            name='3-Month Premium',
            price=1.50,
            duration_months=3,
            features=list(_PREMIUM_FEATURES),
        ),
        SubscriptionPlan(
            plan_id='six_months',
            tier=SubscriptionTier.SIX_MONTHS,
            name='6-Month Premium',
            price=2.00,
            duration_months=6,
            features=_PREMIUM_FEATURES + ['Best value per month'],
        ),
        SubscriptionPlan(
            plan_id='yearly',
            tier=SubscriptionTier.YEARLY,
            name='Yearly Premium',
            price=3.00,
            duration_months=12,
            features=_PREMIUM_FEATURES + ['Maximum savings', 'Bonus features'],
        ),
    )
}


class UnknownPlanError(Exception):
    """Raised when a plan id or name does not match the catalogue"""

    def __init__(self, plan: str):
        self.plan = plan
        super().__init__(f"Unknown plan: {plan}")


def get_plan(plan: str) -> SubscriptionPlan:
    """Look up a plan by id or by display name"""
    if plan in PLANS:
        return PLANS[plan]
    for candidate in PLANS.values():
        if candidate.name.lower() == str(plan).lower():
            return candidate
    raise UnknownPlanError(plan)


def paid_plans() -> List[SubscriptionPlan]:
    return [p for p in PLANS.values() if not p.is_free]


@dataclass(frozen=True)
class FeatureAccess:
    """
    Feature access for the current entitlement.

    Access is strictly binary: premium unlocks everything, free keeps
    the baseline (free-day devotionals, the free translation, ads).
    """
    weekday_devotionals: bool = False
    all_translations: bool = False
    offline_download: bool = False
    screenshots: bool = False
    ad_free: bool = False
    priority_support: bool = False

    @classmethod
    def for_entitlement(cls, entitled: bool) -> 'FeatureAccess':
        if entitled:
            return cls.premium_features()
        return cls.free_features()

    @classmethod
    def free_features(cls) -> 'FeatureAccess':
        return cls()

    @classmethod
    def premium_features(cls) -> 'FeatureAccess':
        return cls(
            weekday_devotionals=True,
            all_translations=True,
            offline_download=True,
            screenshots=True,
            ad_free=True,
            priority_support=True,
        )

    def to_dict(self) -> dict:
        return {
            'weekday_devotionals': self.weekday_devotionals,
            'all_translations': self.all_translations,
            'offline_download': self.offline_download,
            'screenshots': self.screenshots,
            'ad_free': self.ad_free,
            'priority_support': self.priority_support,
        }


@dataclass
class PaymentRecord:
    """
    A single purchase attempt and its outcome.

    Created pending when the user confirms a plan and moved to a terminal
    status once the gateway reports back.
    """
    user_id: str
    user_email: str
    transaction_id: str
    amount: float
    currency: str
    plan_id: str
    status: PaymentStatus = PaymentStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: uuid4().hex)
    user_name: str = ""
    tx_ref: str = ""
    plan_name: str = ""
    plan_duration_months: int = 0
    verified_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        self.status = PaymentStatus(self.status)
        self.created_at = ensure_utc(self.created_at)
        if not self.tx_ref:
            self.tx_ref = self.transaction_id

    @property
    def expires_at(self) -> datetime:
        return add_months(self.created_at, self.plan_duration_months)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Successful and not yet expired at `now`"""
        if self.status != PaymentStatus.SUCCESSFUL or self.plan_duration_months <= 0:
            return False
        now = ensure_utc(now) if now else utcnow()
        return now < self.expires_at

    def to_dict(self) -> dict:
        """Remote (JSON) representation"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'user_email': self.user_email,
            'user_name': self.user_name,
            'transaction_id': self.transaction_id,
            'tx_ref': self.tx_ref,
            'amount': self.amount,
            'currency': self.currency,
            'plan_id': self.plan_id,
            'plan_name': self.plan_name,
            'plan_duration_months': self.plan_duration_months,
            'status': self.status.value,
            'created_at': self.created_at.isoformat(),
            'verified_at': self.verified_at.isoformat() if self.verified_at else None,
            'metadata': self.metadata,
        }

    def to_row(self) -> dict:
        """Local (sqlite) representation"""
        row = self.to_dict()
        row['metadata'] = json.dumps(self.metadata) if self.metadata is not None else None
        return row

    @classmethod
    def from_dict(cls, data: dict) -> 'PaymentRecord':
        metadata = data.get('metadata')
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        plan_id = data['plan_id']
        duration = data.get('plan_duration_months')
        if duration is None:
            duration = PLANS[plan_id].duration_months if plan_id in PLANS else 0

        return cls(
            id=str(data.get('id') or uuid4().hex),
            user_id=data['user_id'],
            user_email=data.get('user_email') or "",
            user_name=data.get('user_name') or "",
            transaction_id=data['transaction_id'],
            tx_ref=data.get('tx_ref') or "",
            amount=float(data['amount']),
            currency=data['currency'],
            plan_id=plan_id,
            plan_name=data.get('plan_name') or "",
            plan_duration_months=int(duration),
            status=PaymentStatus(data['status']),
            created_at=parse_timestamp(data['created_at']),
            verified_at=parse_timestamp(data.get('verified_at')),
            metadata=metadata,
        )

    @classmethod
    def for_plan(
        cls,
        plan: SubscriptionPlan,
        user_id: str,
        user_email: str,
        transaction_id: str,
        currency: str,
        user_name: str = "",
        created_at: Optional[datetime] = None,
        status: PaymentStatus = PaymentStatus.PENDING,
    ) -> 'PaymentRecord':
        return cls(
            user_id=user_id,
            user_email=user_email,
            user_name=user_name,
            transaction_id=transaction_id,
            amount=plan.price,
            currency=currency,
            plan_id=plan.plan_id,
            plan_name=plan.name,
            plan_duration_months=plan.duration_months,
            status=status,
            created_at=created_at or utcnow(),
        )
