"""
Payment API Routes

Handles plan purchases through the payment gateway:
- Purchase start (one session at a time)
- Session polling for the checkout URL and verdict
- Payment history and totals
"""

import asyncio
from typing import List, Optional, Set

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr

from core.app_session import AppSession
from utils.logger import logger
from web_ui.api.middleware.session import get_session

router = APIRouter()

# Keeps running charge tasks referenced until they finish
_charge_tasks: Set[asyncio.Task] = set()


# ========== Pydantic Models ==========

class PurchaseRequest(BaseModel):
    plan: str  # plan id or display name
    email: Optional[EmailStr] = None
    name: Optional[str] = None


class PaymentSessionResponse(BaseModel):
    reference: str
    state: str
    message: str
    plan: dict
    record: dict
    started_at: str
    authorization_url: Optional[str] = None


class PaymentHistoryResponse(BaseModel):
    payments: List[dict]
    total_spent: float
    count: int


# ========== Routes ==========

@router.post("/purchase", response_model=PaymentSessionResponse)
async def start_purchase(
    request: PurchaseRequest,
    wait: bool = False,
    session: AppSession = Depends(get_session),
):
    """
    Start a purchase.

    By default the charge runs in the background and the client polls
    GET /session for the checkout URL and the verdict. Pass wait=true to
    block until the gateway answers.

    Returns 409 while another purchase awaits its verdict.
    """
    payment = session.payments.initiate(request.plan, request.email, request.name)

    if wait:
        await session.payments.complete(payment)
    else:
        task = asyncio.create_task(session.payments.complete(payment))
        _charge_tasks.add(task)
        task.add_done_callback(_charge_tasks.discard)
        # Give the gateway a chance to publish the checkout URL
        await asyncio.sleep(0)

    return PaymentSessionResponse(**payment.to_dict())


@router.get("/session", response_model=PaymentSessionResponse)
def get_active_session(session: AppSession = Depends(get_session)):
    """The purchase currently awaiting a verdict"""
    payment = session.payments.active_session
    if payment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No payment in progress")
    return PaymentSessionResponse(**payment.to_dict())


@router.post("/session/abandon", response_model=PaymentSessionResponse)
def abandon_session(session: AppSession = Depends(get_session)):
    """Release a purchase the gateway never confirmed; its record stays pending"""
    payment = session.payments.abandon_session()
    if payment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No payment in progress")
    logger.info(f"Client abandoned payment {payment.reference}")
    return PaymentSessionResponse(**payment.to_dict())


@router.get("/history", response_model=PaymentHistoryResponse)
def payment_history(session: AppSession = Depends(get_session)):
    user_id = session.user_id
    payments = session.payments.payment_history(user_id)
    return PaymentHistoryResponse(
        payments=[p.to_dict() for p in payments],
        total_spent=session.payments.total_spent(user_id),
        count=len(payments),
    )
