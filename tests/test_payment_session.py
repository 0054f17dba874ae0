#!/usr/bin/env python3
"""
Payment Session Tests

One purchase from plan confirmation to the gateway's verdict, and what
each verdict writes where.
"""

import asyncio
import re
import threading

import aiohttp
import pytest

from backend.local_store import LocalStoreError
from subscription.entitlement import EntitlementResolver
from subscription.gateway import (
    GatewayError,
    GatewayOutcome,
    GatewayResult,
    PaystackGateway,
)
from subscription.identity import UserIdentity
from subscription.models import PaymentStatus, UnknownPlanError
from subscription.payment_session import (
    PaymentInProgressError,
    PaymentService,
    PaymentState,
)
from subscription.sync_queue import PendingSyncQueue
from tests.conftest import make_payment


@pytest.fixture
def identity(preferences, clock):
    return UserIdentity(preferences, clock=clock)


@pytest.fixture
def entitlements(local_store, remote_store, preferences, clock):
    return EntitlementResolver(local_store, remote_store, preferences, clock=clock)


@pytest.fixture
def queue(local_store, remote_store):
    return PendingSyncQueue(local_store, remote_store)


@pytest.fixture
def service(local_store, queue, entitlements, identity, gateway, clock):
    return PaymentService(local_store, queue, entitlements, identity, gateway, clock=clock)


# ============================================================================
# SUCCESS
# ============================================================================

class TestSuccess:

    async def test_successful_purchase(self, service, local_store, remote_store, entitlements, identity):
        user_id = identity.get_user_id()
        assert not entitlements.has_premium_access(user_id)

        session = await service.start_purchase("three_months", email="reader@example.com", name="Ada")

        assert session.state == PaymentState.SUCCEEDED
        record = local_store.get_payment_by_transaction_id(session.reference)
        assert record.status == PaymentStatus.SUCCESSFUL
        assert record.verified_at is not None
        assert record.metadata["gateway_transaction_id"] == "4099260516"
        assert session.reference in remote_store.payments
        assert remote_store.subscriptions[user_id]["plan_id"] == "three_months"
        # Cache invalidated, so access is visible at once
        assert entitlements.has_premium_access(user_id)

    async def test_reference_format(self, service):
        session = await service.start_purchase("yearly")
        assert re.fullmatch(r"DEVOTIONAL_\d+_[0-9A-F]{8}", session.reference)

    async def test_email_linked_to_identity(self, service, identity):
        session = await service.start_purchase("yearly", email="  reader@example.com ", name="Ada")
        assert identity.get_email() == "reader@example.com"
        assert session.record.user_email == "reader@example.com"
        assert session.record.user_name == "Ada"

    async def test_charge_request(self, service, gateway):
        session = await service.start_purchase("six_months")
        request = gateway.requests[0]
        assert request.amount == 2.00
        assert request.amount_minor == 200
        assert request.currency == "NGN"
        assert session.authorization_url == f"https://checkout.test/{session.reference}"

    async def test_success_recorded_off_event_loop(self, service, remote_store, monkeypatch):
        threads = []
        upsert = remote_store.upsert_payment

        def recording(record):
            threads.append(threading.current_thread())
            upsert(record)

        monkeypatch.setattr(remote_store, "upsert_payment", recording)
        await service.start_purchase("three_months")

        assert len(threads) == 1
        assert threads[0] is not threading.main_thread()

    async def test_offline_success_queued_then_flushed(self, service, queue, remote_store, local_store):
        remote_store.fail = True
        session = await service.start_purchase("three_months")

        assert session.state == PaymentState.SUCCEEDED
        assert remote_store.payments == {}
        assert len(local_store.get_pending_syncs()) == 2

        remote_store.fail = False
        queue.flush()
        queue.flush()
        assert list(remote_store.payments) == [session.reference]
        assert local_store.get_pending_syncs() == []


# ============================================================================
# FAILURE
# ============================================================================

class TestFailure:

    async def test_declined(self, service, gateway, local_store, remote_store, entitlements, identity):
        gateway.outcome = GatewayOutcome.FAILED
        session = await service.start_purchase("three_months")

        assert session.state == PaymentState.FAILED
        assert local_store.get_payment_by_transaction_id(session.reference).status == PaymentStatus.FAILED
        assert remote_store.payments == {}
        assert "upsert_payment" not in remote_store.calls
        assert not entitlements.has_premium_access(identity.get_user_id())

    async def test_gateway_error_is_failure(self, service, gateway, local_store):
        gateway.error = GatewayError("initialize", "invalid key", status_code=401)
        session = await service.start_purchase("three_months")

        assert session.state == PaymentState.FAILED
        assert session.message == "invalid key"
        assert service.active_session is None

    async def test_gateway_timeout_is_failure(self, local_store, queue, entitlements, identity,
                                              clock, monkeypatch):
        def timed_out(*args, **kwargs):
            raise asyncio.TimeoutError()

        monkeypatch.setattr(aiohttp.ClientSession, "post", timed_out)
        paystack = PaystackGateway("sk_test_123", poll_interval=0, max_polls=1)
        service = PaymentService(local_store, queue, entitlements, identity, paystack, clock=clock)

        session = await service.start_purchase("three_months")

        assert session.state == PaymentState.FAILED
        assert service.active_session is None
        assert local_store.get_payment_by_transaction_id(session.reference).status == PaymentStatus.FAILED

    async def test_local_write_error_still_fails_session(self, service, gateway, local_store,
                                                         monkeypatch):
        def broken(*args, **kwargs):
            raise LocalStoreError("update_payment_status", "database is locked")

        gateway.outcome = GatewayOutcome.FAILED
        monkeypatch.setattr(local_store, "update_payment_status", broken)

        session = await service.start_purchase("three_months")

        assert session.state == PaymentState.FAILED
        assert service.active_session is None

    async def test_new_purchase_allowed_after_failure(self, service, gateway):
        gateway.outcome = GatewayOutcome.FAILED
        await service.start_purchase("three_months")
        gateway.outcome = GatewayOutcome.SUCCESS
        session = await service.start_purchase("three_months")
        assert session.state == PaymentState.SUCCEEDED


# ============================================================================
# NO REPORT
# ============================================================================

class TestNoReport:

    async def test_stays_initiated(self, service, gateway, local_store):
        gateway.outcome = GatewayOutcome.NO_REPORT
        session = await service.start_purchase("three_months")

        assert session.state == PaymentState.INITIATED
        assert service.active_session is session
        assert local_store.get_payment_by_transaction_id(session.reference).status == PaymentStatus.PENDING

    async def test_second_purchase_rejected(self, service, gateway):
        gateway.outcome = GatewayOutcome.NO_REPORT
        session = await service.start_purchase("three_months")

        with pytest.raises(PaymentInProgressError) as exc_info:
            service.initiate("yearly")
        assert exc_info.value.reference == session.reference
        assert len(gateway.requests) == 1

    async def test_abandon_releases_slot(self, service, gateway, local_store):
        gateway.outcome = GatewayOutcome.NO_REPORT
        session = await service.start_purchase("three_months")

        assert service.abandon_session() is session
        assert service.active_session is None
        assert local_store.get_payment_by_transaction_id(session.reference).status == PaymentStatus.PENDING
        assert service.abandon_session() is None

    async def test_late_verdict_applied(self, service, gateway, local_store):
        gateway.outcome = GatewayOutcome.NO_REPORT
        session = await service.start_purchase("three_months")

        service.handle_gateway_result(GatewayResult(GatewayOutcome.SUCCESS, session.reference))
        assert session.state == PaymentState.SUCCEEDED
        assert local_store.get_payment_by_transaction_id(session.reference).status == PaymentStatus.SUCCESSFUL


# ============================================================================
# VERDICT HANDLING
# ============================================================================

class TestVerdicts:

    async def test_duplicate_verdict_ignored(self, service, remote_store):
        session = await service.start_purchase("three_months")
        calls = list(remote_store.calls)

        service.handle_gateway_result(GatewayResult(GatewayOutcome.FAILED, session.reference))
        assert session.state == PaymentState.SUCCEEDED
        assert remote_store.calls == calls

    def test_unknown_reference_ignored(self, service):
        result = GatewayResult(GatewayOutcome.SUCCESS, "DEVOTIONAL_0_DEADBEEF")
        assert service.handle_gateway_result(result) is None

    def test_free_plan_rejected(self, service):
        with pytest.raises(UnknownPlanError):
            service.initiate("free")

    def test_unknown_plan_rejected(self, service):
        with pytest.raises(UnknownPlanError):
            service.initiate("lifetime")


class TestHistory:

    async def test_history_and_total(self, service, gateway, identity):
        await service.start_purchase("three_months")
        gateway.outcome = GatewayOutcome.FAILED
        await service.start_purchase("yearly")

        user_id = identity.get_user_id()
        history = service.payment_history(user_id)
        assert len(history) == 2
        assert service.total_spent(user_id) == pytest.approx(1.50)

    async def test_history_includes_earlier_install_by_email(self, service, identity, local_store, clock):
        local_store.save_payment(make_payment("user_1600000000000", clock(), transaction_id="OLD"))
        session = await service.start_purchase("yearly", email="reader@example.com")

        history = service.payment_history(identity.get_user_id())
        assert {r.transaction_id for r in history} == {"OLD", session.reference}
        assert service.total_spent(identity.get_user_id()) == pytest.approx(4.50)

    async def test_history_without_linked_email(self, service, identity, local_store, clock):
        local_store.save_payment(make_payment("user_1600000000000", clock(), transaction_id="OLD"))
        session = await service.start_purchase("yearly")

        history = service.payment_history(identity.get_user_id())
        assert [r.transaction_id for r in history] == [session.reference]
