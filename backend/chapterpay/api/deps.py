from __future__ import annotations

from typing import Any

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from chapterpay.core.database import SessionLocal, get_db
from chapterpay.core.settings import settings
from chapterpay.services.earnings_queue import BackgroundEarningsQueue, EarningsQueue, InlineEarningsQueue
from chapterpay.services.monetization_rules import MonetizationConfig
from chapterpay.services.unlocks import UnlockEngine


def get_config() -> MonetizationConfig:
    return settings.monetization_config()


def get_earnings_queue(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    config: MonetizationConfig = Depends(get_config),
) -> EarningsQueue:
    if settings.earnings_dispatch == "background":
        return BackgroundEarningsQueue(background_tasks, SessionLocal, config)
    return InlineEarningsQueue(db, config)


def get_unlock_engine(
    db: Session = Depends(get_db),
    config: MonetizationConfig = Depends(get_config),
    earnings: EarningsQueue = Depends(get_earnings_queue),
) -> UnlockEngine:
    return UnlockEngine(db, config, earnings)


def ok(data: Any, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    return body
