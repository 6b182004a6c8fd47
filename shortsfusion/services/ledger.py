"""
Ledger Service - Token balance changes backed by an append-only ledger

Every change to `users.tokens` goes through `debit` or `credit`, which write a
ledger row and adjust the materialized balance in the same transaction.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shortsfusion.config.constants import (
    REASON_PLAN_CHANGE,
    REASON_SIGNUP_GRANT,
    SUPPORTED_PLANS,
)
from shortsfusion.config.settings import settings
from shortsfusion.models.ledger import LedgerEntryModel
from shortsfusion.models.user import UserModel
from shortsfusion.services.observability import logger
from shortsfusion.services.storage import UserDB


class LedgerError(Exception):
    """Base class for ledger errors"""

    pass


class InsufficientBalance(LedgerError):
    """Debit would take the balance below zero"""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient tokens: required {required}, available {available}")


class LedgerConflict(LedgerError):
    """Idempotency key reused with a different delta or reason"""

    def __init__(self, idempotency_key: str, message: str):
        self.idempotency_key = idempotency_key
        super().__init__(message)


class UserNotFound(LedgerError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


def _find_entry(db: Session, idempotency_key: str) -> Optional[LedgerEntryModel]:
    return (
        db.query(LedgerEntryModel)
        .filter(LedgerEntryModel.idempotency_key == idempotency_key)
        .first()
    )


def _check_duplicate(
    existing: LedgerEntryModel,
    user_id: str,
    delta: int,
    reason: str,
) -> LedgerEntryModel:
    if existing.delta == delta and existing.reason == reason and existing.user_id == user_id:
        logger.info(
            "ledger_duplicate_ignored",
            user_id=user_id,
            idempotency_key=existing.idempotency_key,
            delta=delta,
        )
        return existing

    logger.error(
        "ledger_conflict",
        user_id=user_id,
        idempotency_key=existing.idempotency_key,
        stored_delta=existing.delta,
        stored_reason=existing.reason,
        requested_delta=delta,
        requested_reason=reason,
    )
    raise LedgerConflict(
        existing.idempotency_key,
        f"Idempotency key {existing.idempotency_key} already recorded as "
        f"{existing.delta} ({existing.reason}), refusing {delta} ({reason})",
    )


def _write_entry(
    db: Session,
    user_id: str,
    delta: int,
    reason: str,
    idempotency_key: str,
    video_id: Optional[str],
    commit: bool,
) -> LedgerEntryModel:
    existing = _find_entry(db, idempotency_key)
    if existing is not None:
        return _check_duplicate(existing, user_id, delta, reason)

    if UserDB.get_user(db, user_id) is None:
        raise UserNotFound(user_id)

    conditions = [UserModel.id == user_id]
    if delta < 0:
        # Conditional decrement keeps the balance non-negative even
        # where SELECT ... FOR UPDATE is not enforced (SQLite)
        conditions.append(UserModel.tokens >= -delta)
    result = db.execute(
        update(UserModel)
        .where(*conditions)
        .values(tokens=UserModel.tokens + delta, updated_at=datetime.utcnow())
    )
    if result.rowcount == 0:
        available = db.query(UserModel.tokens).filter(UserModel.id == user_id).scalar()
        raise InsufficientBalance(required=-delta, available=available or 0)

    entry = LedgerEntryModel(
        user_id=user_id,
        delta=delta,
        reason=reason,
        video_id=video_id,
        idempotency_key=idempotency_key,
    )
    try:
        # The UPDATE above opened the transaction, so this savepoint is nested
        with db.begin_nested():
            db.add(entry)
            db.flush()
    except IntegrityError:
        # A concurrent writer recorded the same key first; undo our balance change
        db.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(tokens=UserModel.tokens - delta, updated_at=datetime.utcnow())
        )
        existing = _find_entry(db, idempotency_key)
        if existing is None:
            raise
        if commit:
            db.commit()
        return _check_duplicate(existing, user_id, delta, reason)

    if commit:
        db.commit()
        db.refresh(entry)

    logger.info(
        "ledger_entry_recorded",
        user_id=user_id,
        delta=delta,
        reason=reason,
        video_id=video_id,
        idempotency_key=idempotency_key,
    )
    return entry


def debit(
    db: Session,
    user_id: str,
    amount: int,
    reason: str,
    idempotency_key: str,
    video_id: Optional[str] = None,
    commit: bool = True,
) -> LedgerEntryModel:
    """
    Remove tokens from a user's balance

    Args:
        db: Database session
        user_id: Account to charge
        amount: Positive number of tokens
        reason: Ledger reason code
        idempotency_key: Deterministic key making the write at-most-once
        video_id: Optional video the charge belongs to
        commit: Commit the session; pass False inside a larger transaction

    Returns:
        The recorded (or previously recorded) ledger entry

    Raises:
        ValueError: If amount is not a positive integer
        InsufficientBalance: If the balance is lower than amount
        LedgerConflict: If the key was used for a different write
        UserNotFound: If the user does not exist
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValueError(f"Debit amount must be a positive integer, got {amount!r}")
    return _write_entry(db, user_id, -amount, reason, idempotency_key, video_id, commit)


def credit(
    db: Session,
    user_id: str,
    amount: int,
    reason: str,
    idempotency_key: str,
    video_id: Optional[str] = None,
    commit: bool = True,
) -> LedgerEntryModel:
    """
    Add tokens to a user's balance

    Same contract as `debit`, without the balance check.
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValueError(f"Credit amount must be a positive integer, got {amount!r}")
    return _write_entry(db, user_id, amount, reason, idempotency_key, video_id, commit)


def balance_of(db: Session, user_id: str) -> int:
    """Current materialized balance"""
    tokens = db.query(UserModel.tokens).filter(UserModel.id == user_id).scalar()
    if tokens is None:
        raise UserNotFound(user_id)
    return tokens


def ledger_sum(db: Session, user_id: str) -> int:
    """Sum of all ledger deltas for a user"""
    return (
        db.query(func.coalesce(func.sum(LedgerEntryModel.delta), 0))
        .filter(LedgerEntryModel.user_id == user_id)
        .scalar()
    )


def entries_for(
    db: Session,
    user_id: str,
    video_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[LedgerEntryModel]:
    """Ledger entries for a user, newest first"""
    query = db.query(LedgerEntryModel).filter(LedgerEntryModel.user_id == user_id)
    if video_id:
        query = query.filter(LedgerEntryModel.video_id == video_id)
    query = query.order_by(LedgerEntryModel.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def ensure_user(db: Session, user_id: str, email: str) -> UserModel:
    """
    Get the user, creating it with the signup grant on first login

    Args:
        db: Database session
        user_id: Identity provider subject
        email: Account email

    Returns:
        UserModel
    """
    user = UserDB.get_user(db, user_id)
    if user is not None:
        return user

    try:
        UserDB.create_user(db, email=email, user_id=user_id, commit=False)
        if settings.signup_token_grant > 0:
            credit(
                db,
                user_id,
                settings.signup_token_grant,
                REASON_SIGNUP_GRANT,
                f"grant:{user_id}:signup",
                commit=False,
            )
        db.commit()
    except IntegrityError:
        # Concurrent first request created the row
        db.rollback()
        user = UserDB.get_user(db, user_id)
        if user is None:
            raise
        return user
    except Exception:
        db.rollback()
        raise

    logger.info(
        "user_created",
        user_id=user_id,
        signup_grant=settings.signup_token_grant,
    )
    return UserDB.get_user(db, user_id)


def apply_plan_change(
    db: Session,
    user_id: str,
    plan: str,
    event_id: str,
    tokens: int = 0,
) -> UserModel:
    """
    Apply a payment plan change event

    Redelivered events are absorbed by the `plan:{event_id}` ledger key.

    Raises:
        ValueError: If plan is unknown or tokens is negative
        UserNotFound: If the user does not exist
    """
    if plan not in SUPPORTED_PLANS:
        raise ValueError(f"Unsupported plan: {plan}. Supported: {SUPPORTED_PLANS}")
    if tokens < 0:
        raise ValueError("Plan token grant cannot be negative")

    try:
        user = UserDB.update_plan(db, user_id, plan, commit=False)
        if user is None:
            raise UserNotFound(user_id)
        if tokens > 0:
            credit(
                db,
                user_id,
                tokens,
                REASON_PLAN_CHANGE,
                f"plan:{event_id}",
                commit=False,
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "plan_changed",
        user_id=user_id,
        plan=plan,
        event_id=event_id,
        tokens=tokens,
    )
    db.refresh(user)
    return user
