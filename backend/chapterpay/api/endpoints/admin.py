from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from chapterpay.api.deps import ok
from chapterpay.core.database import get_db
from chapterpay.core.security import CurrentUser, require_admin
from chapterpay.schemas.monetization import CoinGrantRequest
from chapterpay.services import wallet

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


@router.post("/users/{user_id}/coins/grant")
async def grant_coins(
    user_id: str,
    payload: CoinGrantRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    entry = wallet.credit_coins(db, user_id, payload.amount, payload.reason, payload.description)
    logger.info("admin.coins.grant admin=%s user=%s amount=%s", admin.id, user_id, payload.amount)
    return ok(
        {
            "userId": user_id,
            "amount": int(entry.amount),
            "balance": int(entry.balance_after),
            "transactionId": entry.id,
        },
        "Coins granted",
    )
