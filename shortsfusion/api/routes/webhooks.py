"""
Webhook API Routes - Payment plan changes
"""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from shortsfusion.config.settings import settings
from shortsfusion.models import get_db
from shortsfusion.services import ledger
from shortsfusion.services.identity import Unauthenticated
from shortsfusion.services.observability import logger


class PaymentEventRequest(BaseModel):
    """Plan change delivered by the payment provider"""

    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(..., alias="eventId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)
    plan: str
    tokens: int = Field(default=0, ge=0)


class PaymentEventResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    plan: str
    tokens: int


router = APIRouter()


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(default=None)) -> None:
    expected = settings.payment_webhook_secret
    if not expected or not x_webhook_secret:
        raise Unauthenticated("Webhook secret missing")
    if not hmac.compare_digest(expected, x_webhook_secret):
        raise Unauthenticated("Webhook secret mismatch")


@router.post(
    "/webhooks/payments",
    response_model=PaymentEventResponse,
    dependencies=[Depends(verify_webhook_secret)],
)
async def payment_webhook(
    event: PaymentEventRequest,
    db: Session = Depends(get_db),
):
    """Apply a plan change; redelivered events are absorbed"""
    logger.info(
        "payment_event_received",
        event_id=event.event_id,
        user_id=event.user_id,
        plan=event.plan,
        tokens=event.tokens,
    )
    user = ledger.apply_plan_change(
        db,
        user_id=event.user_id,
        plan=event.plan,
        event_id=event.event_id,
        tokens=event.tokens,
    )
    return PaymentEventResponse(user_id=user.id, plan=user.plan, tokens=user.tokens)
