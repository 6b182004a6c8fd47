"""
Account API Routes - Balance and ledger history
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from shortsfusion.api.dependencies import get_current_user
from shortsfusion.config.constants import DEFAULT_PAGE_SIZE
from shortsfusion.models import get_db
from shortsfusion.models.user import UserModel
from shortsfusion.services import ledger


class BalanceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tokens: int
    plan: str
    ledger_sum: int = Field(..., alias="ledgerSum")


class LedgerEntryResponse(BaseModel):
    id: int
    delta: int
    reason: str
    video_id: Optional[str] = None
    idempotency_key: str
    created_at: Optional[str] = None


router = APIRouter()


@router.get("/account/balance", response_model=BalanceResponse)
async def get_balance(
    db: Session = Depends(get_db),
    user: UserModel = Depends(get_current_user),
):
    return BalanceResponse(
        tokens=ledger.balance_of(db, user.id),
        plan=user.plan,
        ledger_sum=ledger.ledger_sum(db, user.id),
    )


@router.get("/account/ledger", response_model=List[LedgerEntryResponse])
async def get_ledger(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=500),
    db: Session = Depends(get_db),
    user: UserModel = Depends(get_current_user),
):
    """Ledger entries for the caller, newest first"""
    entries = ledger.entries_for(db, user.id, limit=limit)
    return [LedgerEntryResponse(**entry.to_dict()) for entry in entries]
