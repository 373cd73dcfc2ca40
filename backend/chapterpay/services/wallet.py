from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from chapterpay.core.errors import NotFoundError, ValidationError
from chapterpay.models.coin_transaction import CoinTransaction, CoinTransactionType
from chapterpay.models.user import User
from chapterpay.services.monetization_rules import as_utc, utcnow

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found", code="user_not_found")
    return user


def coin_balance(db: Session, user_id: str) -> int:
    return int(get_user(db, user_id).coins or 0)


def coin_history(db: Session, user_id: str, limit: int = 20, skip: int = 0) -> dict[str, Any]:
    limit = max(1, min(int(limit or 20), 100))
    skip = max(0, int(skip or 0))
    q = db.query(CoinTransaction).filter(CoinTransaction.user_id == user_id)
    total = q.count()
    rows = q.order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc()).offset(skip).limit(limit).all()
    return {
        "transactions": [
            {
                "id": t.id,
                "type": t.type,
                "amount": int(t.amount or 0),
                "reason": t.reason,
                "description": t.description,
                "balanceAfter": int(t.balance_after or 0),
                "relatedItem": t.related_item,
                "createdAt": (as_utc(t.created_at).isoformat() if t.created_at else None),
            }
            for t in rows
        ],
        "total": int(total),
        "limit": limit,
        "skip": skip,
    }


def credit_coins(
    db: Session,
    user_id: str,
    amount: int,
    reason: str,
    description: str | None = None,
    now: datetime | None = None,
) -> CoinTransaction:
    amount = int(amount)
    if amount <= 0:
        raise ValidationError("Coin amount must be positive", code="invalid_amount")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Reason is required", code="invalid_reason")
    now = now or utcnow()

    get_user(db, user_id)
    db.query(User).filter(User.id == user_id).update({User.coins: User.coins + amount}, synchronize_session=False)
    balance = int(db.query(User.coins).filter(User.id == user_id).scalar() or 0)
    entry = CoinTransaction(
        user_id=user_id,
        type=CoinTransactionType.EARNED,
        amount=amount,
        reason=reason,
        description=description,
        balance_after=balance,
        created_at=now,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("wallet.credit.ok user=%s amount=%s balance=%s reason=%s", user_id, amount, balance, reason)
    return entry
