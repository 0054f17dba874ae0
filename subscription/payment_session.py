"""
Payment Session - one purchase attempt from plan confirmation to verdict

State machine:
    INITIATED -> SUCCEEDED   gateway confirmed; record written locally and
                             remotely, entitlement cache invalidated
    INITIATED -> FAILED      gateway declined; record written locally only
    INITIATED (stays)        gateway never reported; record stays pending

Charges are never retried automatically, and only one session may be
INITIATED at a time.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Union
from uuid import uuid4

from backend.local_store import LocalRecordStore, LocalStoreError
from subscription.entitlement import EntitlementResolver
from subscription.gateway import (
    ChargeRequest,
    GatewayError,
    GatewayOutcome,
    GatewayResult,
    PaymentGateway,
)
from subscription.identity import UserIdentity
from subscription.models import (
    PaymentRecord,
    PaymentStatus,
    SubscriptionPlan,
    UnknownPlanError,
    get_plan,
    utcnow,
)
from subscription.sync_queue import PendingSyncQueue
from utils.logger import logger


class PaymentState(str, Enum):
    INITIATED = "initiated"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PaymentInProgressError(Exception):
    """Raised when a purchase starts while another is awaiting its verdict"""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Payment {reference} is still in progress")


@dataclass
class PaymentSession:
    plan: SubscriptionPlan
    record: PaymentRecord
    state: PaymentState = PaymentState.INITIATED
    message: str = ""
    started_at: datetime = field(default_factory=utcnow)
    authorization_url: Optional[str] = None

    @property
    def reference(self) -> str:
        return self.record.transaction_id

    @property
    def is_terminal(self) -> bool:
        return self.state != PaymentState.INITIATED

    def to_dict(self) -> dict:
        return {
            'reference': self.reference,
            'state': self.state.value,
            'message': self.message,
            'plan': self.plan.to_dict(),
            'record': self.record.to_dict(),
            'started_at': self.started_at.isoformat(),
            'authorization_url': self.authorization_url,
        }


class PaymentService:
    """
    Runs payment sessions against a gateway and records their outcome.

    Terminal transitions are applied exactly once; a late or duplicate
    verdict for a finished session is ignored.
    """

    def __init__(
        self,
        local_store: LocalRecordStore,
        sync_queue: PendingSyncQueue,
        entitlements: EntitlementResolver,
        identity: UserIdentity,
        gateway: PaymentGateway,
        currency: str = "NGN",
        clock: Callable[[], datetime] = utcnow,
    ):
        self._local = local_store
        self._sync = sync_queue
        self._entitlements = entitlements
        self._identity = identity
        self._gateway = gateway
        self.currency = currency
        self._clock = clock
        self._active: Optional[PaymentSession] = None

    @property
    def active_session(self) -> Optional[PaymentSession]:
        if self._active and not self._active.is_terminal:
            return self._active
        return None

    def _new_reference(self) -> str:
        millis = int(self._clock().timestamp() * 1000)
        return f"DEVOTIONAL_{millis}_{uuid4().hex[:8].upper()}"

    async def start_purchase(
        self,
        plan: Union[str, SubscriptionPlan],
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> PaymentSession:
        """Start a session for a plan and wait for the gateway's verdict"""
        session = self.initiate(plan, email, name)
        return await self.complete(session)

    def initiate(
        self,
        plan: Union[str, SubscriptionPlan],
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> PaymentSession:
        """
        Enter INITIATED: write the pending record and claim the active slot.

        Args:
            plan: Plan id, display name or SubscriptionPlan
            email: Payer email, linked to the local identity
            name: Payer display name

        Raises:
            PaymentInProgressError: another session is still INITIATED
            UnknownPlanError: the plan is unknown or not purchasable
        """
        if self.active_session:
            raise PaymentInProgressError(self.active_session.reference)

        if not isinstance(plan, SubscriptionPlan):
            plan = get_plan(plan)
        if plan.is_free:
            raise UnknownPlanError(plan.plan_id)

        if email:
            self._identity.link_email(email, name)
        user_id = self._identity.get_user_id()

        record = PaymentRecord.for_plan(
            plan,
            user_id=user_id,
            user_email=self._identity.get_email(),
            user_name=self._identity.get_name(),
            transaction_id=self._new_reference(),
            currency=self.currency,
            created_at=self._clock(),
        )
        self._local.save_payment(record)

        session = PaymentSession(plan=plan, record=record, started_at=record.created_at)
        self._active = session
        logger.info(f"Payment initiated: {record.transaction_id} for {plan.name}")
        return session

    async def complete(self, session: PaymentSession) -> PaymentSession:
        """Charge through the gateway and apply its verdict"""
        record = session.record

        def remember_url(url: str):
            session.authorization_url = url

        request = ChargeRequest(
            reference=record.transaction_id,
            amount=session.plan.price,
            currency=record.currency,
            email=record.user_email,
            plan_id=session.plan.plan_id,
            plan_name=session.plan.name,
            user_id=record.user_id,
            user_name=record.user_name,
            on_authorization_url=remember_url,
        )

        try:
            result = await self._gateway.charge(request)
        except GatewayError as e:
            logger.error(f"Gateway error for {record.transaction_id}: {e}")
            result = GatewayResult(GatewayOutcome.FAILED, record.transaction_id, message=e.message)

        # Recording a success writes to the cloud store with blocking calls
        await asyncio.get_running_loop().run_in_executor(None, self.handle_gateway_result, result)
        return session

    def handle_gateway_result(self, result: GatewayResult) -> Optional[PaymentSession]:
        """Apply a gateway verdict to the session it belongs to"""
        session = self._active
        if session is None or session.reference != result.reference:
            logger.warning(f"Ignoring gateway result for unknown session {result.reference}")
            return None
        if session.is_terminal:
            return session

        if result.outcome == GatewayOutcome.SUCCESS:
            self._succeed(session, result)
        elif result.outcome == GatewayOutcome.FAILED:
            self._fail(session, result)
        else:
            session.message = result.message
            logger.warning(f"Payment {session.reference} still pending: {result.message}")
        return session

    def abandon_session(self) -> Optional[PaymentSession]:
        """
        Release a session the gateway never reported on.

        The record stays pending; a later successful verification can be
        restored from the cloud store.
        """
        session = self.active_session
        if session:
            logger.info(f"Payment session {session.reference} abandoned while pending")
            self._active = None
        return session

    def _succeed(self, session: PaymentSession, result: GatewayResult):
        record = session.record
        record.status = PaymentStatus.SUCCESSFUL
        record.verified_at = self._clock()
        record.metadata = {
            **(record.metadata or {}),
            'gateway': 'paystack',
            'gateway_transaction_id': result.gateway_transaction_id,
            'gateway_message': result.message,
        }

        try:
            self._local.save_payment(record)
        except LocalStoreError as e:
            logger.error(f"Could not store successful payment {record.transaction_id} locally: {e}")

        self._sync.push_payment(record)
        self._sync.push_subscription(
            record.user_id, record.plan_id, record.created_at, record.expires_at
        )
        self._entitlements.invalidate(record.user_id)

        session.state = PaymentState.SUCCEEDED
        session.message = result.message or "Payment successful"
        logger.info(f"Payment succeeded: {record.transaction_id} ({session.plan.name})")

    def _fail(self, session: PaymentSession, result: GatewayResult):
        record = session.record
        record.status = PaymentStatus.FAILED
        try:
            self._local.update_payment_status(record.transaction_id, PaymentStatus.FAILED)
        except LocalStoreError as e:
            logger.error(f"Could not store failed payment {record.transaction_id} locally: {e}")

        session.state = PaymentState.FAILED
        session.message = result.message or "Payment failed"
        logger.info(f"Payment failed: {record.transaction_id}: {session.message}")

    # ========== History ==========

    def _linked_email(self) -> Optional[str]:
        profile = self._identity.profile()
        return profile.email if profile.email_linked else None

    def payment_history(self, user_id: str) -> List[PaymentRecord]:
        """
        Payments of a user, newest first.

        Each install generates a fresh user id, so records stored under the
        same linked email by an earlier identity are included too.
        """
        records = {r.transaction_id: r for r in self._local.get_payments(user_id)}
        email = self._linked_email()
        if email:
            for record in self._local.get_payments_by_email(email):
                records.setdefault(record.transaction_id, record)
        return sorted(records.values(), key=lambda r: r.created_at, reverse=True)

    def total_spent(self, user_id: str) -> float:
        if not self._linked_email():
            return self._local.total_spent(user_id)
        return sum(
            r.amount for r in self.payment_history(user_id)
            if r.status == PaymentStatus.SUCCESSFUL
        )
