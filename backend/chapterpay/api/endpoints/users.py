from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from chapterpay.api.deps import ok
from chapterpay.core.database import get_db
from chapterpay.core.security import CurrentUser, get_current_user
from chapterpay.services import wallet


router = APIRouter(prefix="/users")


@router.get("/coins")
async def get_coins(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)) -> dict:
    return ok({"userId": user.id, "coins": wallet.coin_balance(db, user.id)})


@router.get("/coin-history")
async def get_coin_history(
    limit: int = 20,
    skip: int = 0,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return ok(wallet.coin_history(db, user.id, limit=limit, skip=skip))
