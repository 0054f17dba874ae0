"""
Payment Gateway boundary

The rest of the app only knows `PaymentGateway.charge(request)`, which
resolves to one of three outcomes:

- SUCCESS: the gateway confirmed the charge
- FAILED: the gateway declined it, or the user abandoned checkout
- NO_REPORT: verification polling ran out before the gateway answered

PaystackGateway initializes a hosted-checkout transaction, hands the
authorization URL to the UI via a callback, then polls the verify endpoint.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

import aiohttp

from utils.logger import logger


class GatewayOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    NO_REPORT = "no_report"


class GatewayError(Exception):
    """Raised when the gateway cannot be reached or rejects a request"""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        self.operation = operation
        self.message = message
        self.status_code = status_code
        super().__init__(f"{operation}: {message}")


@dataclass
class ChargeRequest:
    """What the gateway needs to charge a plan"""
    reference: str
    amount: float
    currency: str
    email: str
    plan_id: str
    plan_name: str
    user_id: str
    user_name: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    # Receives the hosted checkout URL once the gateway has one
    on_authorization_url: Optional[Callable[[str], Any]] = None

    @property
    def amount_minor(self) -> int:
        """Amount in the smallest currency unit (kobo for NGN)"""
        return int(round(self.amount * 100))


@dataclass
class GatewayResult:
    outcome: GatewayOutcome
    reference: str
    message: str = ""
    gateway_transaction_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == GatewayOutcome.SUCCESS


class PaymentGateway(ABC):
    """Abstract payment gateway"""

    @abstractmethod
    async def charge(self, request: ChargeRequest) -> GatewayResult:
        """Charge and wait for the gateway's verdict"""
        pass


# Verify statuses that end a transaction without payment
PAYSTACK_FAILED_STATUSES = {"failed", "abandoned", "reversed"}


class PaystackGateway(PaymentGateway):
    """Paystack hosted checkout with verify polling"""

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        poll_interval: float = 3.0,
        max_polls: int = 60,
        timeout: float = 30.0,
        on_authorization_url: Optional[Callable[[str], Any]] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.timeout = timeout
        self.on_authorization_url = on_authorization_url

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def charge(self, request: ChargeRequest) -> GatewayResult:
        if not self.secret_key:
            raise GatewayError("initialize", "Paystack secret key not configured")

        async with aiohttp.ClientSession(
            headers=self._headers(),
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as session:
            authorization_url = await self._initialize(session, request)
            await self._announce(authorization_url, request)
            return await self._poll(session, request)

    async def _initialize(self, session: aiohttp.ClientSession, request: ChargeRequest) -> str:
        payload = {
            "email": request.email,
            "amount": request.amount_minor,
            "currency": request.currency,
            "reference": request.reference,
            "metadata": {
                "user_id": request.user_id,
                "user_name": request.user_name,
                "plan_id": request.plan_id,
                "plan_name": request.plan_name,
                **request.metadata,
            },
        }

        try:
            async with session.post(f"{self.base_url}/transaction/initialize", json=payload) as response:
                data = await response.json(content_type=None)
                if response.status != 200 or not data.get("status"):
                    raise GatewayError(
                        "initialize",
                        data.get("message", f"HTTP {response.status}"),
                        status_code=response.status,
                    )
                authorization_url = data["data"]["authorization_url"]
        except asyncio.TimeoutError as e:
            raise GatewayError("initialize", "Request timed out") from e
        except (aiohttp.ClientError, ValueError, KeyError, TypeError, AttributeError) as e:
            # ValueError covers a non-JSON body such as a proxy error page
            raise GatewayError("initialize", f"{type(e).__name__}: {e}") from e

        logger.info(f"Paystack transaction initialized: {request.reference}")
        return authorization_url

    async def _announce(self, authorization_url: str, request: ChargeRequest):
        for callback in (request.on_authorization_url, self.on_authorization_url):
            if callback is None:
                continue
            result = callback(authorization_url)
            if inspect.isawaitable(result):
                await result

    async def _poll(self, session: aiohttp.ClientSession, request: ChargeRequest) -> GatewayResult:
        for attempt in range(1, self.max_polls + 1):
            await asyncio.sleep(self.poll_interval)

            try:
                data = await self.verify(session, request.reference)
            except GatewayError as e:
                logger.warning(f"Polling error (attempt {attempt}): {e}")
                continue

            status = data.get("status")
            if status == "success":
                return GatewayResult(
                    outcome=GatewayOutcome.SUCCESS,
                    reference=request.reference,
                    message=data.get("gateway_response") or "Payment successful",
                    gateway_transaction_id=str(data["id"]) if data.get("id") is not None else None,
                    amount=data["amount"] / 100 if data.get("amount") is not None else None,
                    currency=data.get("currency"),
                )
            if status in PAYSTACK_FAILED_STATUSES:
                return GatewayResult(
                    outcome=GatewayOutcome.FAILED,
                    reference=request.reference,
                    message=data.get("gateway_response") or f"Payment {status}",
                )

        logger.warning(f"No verdict from Paystack after {self.max_polls} polls: {request.reference}")
        return GatewayResult(
            outcome=GatewayOutcome.NO_REPORT,
            reference=request.reference,
            message="Payment not confirmed yet",
        )

    async def verify(self, session: aiohttp.ClientSession, reference: str) -> dict:
        """Fetch the transaction's `data` object from the verify endpoint"""
        try:
            async with session.get(f"{self.base_url}/transaction/verify/{reference}") as response:
                if response.status != 200:
                    raise GatewayError("verify", f"HTTP {response.status}", status_code=response.status)
                body = await response.json(content_type=None)
                data = body.get("data") or {}
        except asyncio.TimeoutError as e:
            raise GatewayError("verify", "Request timed out") from e
        except (aiohttp.ClientError, ValueError, AttributeError) as e:
            raise GatewayError("verify", f"{type(e).__name__}: {e}") from e
        return data if isinstance(data, dict) else {}
