from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from chapterpay.api.deps import get_config, get_unlock_engine, ok
from chapterpay.core.database import get_db
from chapterpay.core.security import CurrentUser, get_current_user, get_optional_user
from chapterpay.schemas.monetization import RecordAdRequest
from chapterpay.services import entitlements
from chapterpay.services.monetization_rules import MonetizationConfig
from chapterpay.services.unlocks import UnlockEngine


router = APIRouter(prefix="/chapter-access")


@router.get("/check/{chapter_id}")
async def check_access(
    chapter_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser | None = Depends(get_optional_user),
    config: MonetizationConfig = Depends(get_config),
) -> dict:
    decision = entitlements.has_access(db, user.id if user else None, chapter_id, config)
    return ok(decision.to_dict())


@router.post("/purchase/{chapter_id}")
async def purchase_chapter(
    chapter_id: str,
    user: CurrentUser = Depends(get_current_user),
    engine: UnlockEngine = Depends(get_unlock_engine),
) -> dict:
    result = engine.purchase_chapter(user.id, chapter_id)
    return ok(result.to_dict(), "Chapter purchased successfully")


@router.post("/unlock-coins/{chapter_id}")
async def unlock_by_coins(
    chapter_id: str,
    user: CurrentUser = Depends(get_current_user),
    engine: UnlockEngine = Depends(get_unlock_engine),
) -> dict:
    result = engine.unlock_by_coins(user.id, chapter_id)
    return ok(result.to_dict(), "Chapter unlocked successfully with coins")


@router.post("/unlock-ads/{chapter_id}")
async def unlock_by_ads(
    chapter_id: str,
    user: CurrentUser = Depends(get_current_user),
    engine: UnlockEngine = Depends(get_unlock_engine),
) -> dict:
    result = engine.unlock_by_ads(user.id, chapter_id)
    return ok(result.to_dict(), "Chapter unlocked successfully by watching ads")


@router.post("/record-ad/{novel_id}")
async def record_ad_watch(
    novel_id: str,
    payload: RecordAdRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    engine: UnlockEngine = Depends(get_unlock_engine),
) -> dict:
    payload = payload or RecordAdRequest()
    result = engine.record_ad_watch(user.id, novel_id, payload.chapter_id, payload.ad_type)
    return ok(result.to_dict(), "Ad watch recorded successfully")


@router.get("/ad-status/{novel_id}")
async def ad_unlock_status(
    novel_id: str,
    user: CurrentUser = Depends(get_current_user),
    engine: UnlockEngine = Depends(get_unlock_engine),
) -> dict:
    return ok(engine.ad_unlock_status(user.id, novel_id).to_dict())


@router.get("/user-access/{novel_id}")
async def user_novel_access(
    novel_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    config: MonetizationConfig = Depends(get_config),
) -> dict:
    return ok(entitlements.novel_access_map(db, user.id, novel_id, config))


@router.get("/unlock-history")
async def unlock_history(
    limit: int = 20,
    skip: int = 0,
    user: CurrentUser = Depends(get_current_user),
    engine: UnlockEngine = Depends(get_unlock_engine),
) -> dict:
    return ok(engine.unlock_history(user.id, None, limit=limit, skip=skip))


@router.get("/unlock-history/{novel_id}")
async def novel_unlock_history(
    novel_id: str,
    limit: int = 20,
    skip: int = 0,
    user: CurrentUser = Depends(get_current_user),
    engine: UnlockEngine = Depends(get_unlock_engine),
) -> dict:
    return ok(engine.unlock_history(user.id, novel_id, limit=limit, skip=skip))


@router.get("/stats/{chapter_id}")
async def chapter_access_stats(
    chapter_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return ok(entitlements.chapter_access_stats(db, user.id, chapter_id))
