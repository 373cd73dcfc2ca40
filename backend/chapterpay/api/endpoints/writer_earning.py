from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from chapterpay.api.deps import get_config, ok
from chapterpay.core.database import get_db
from chapterpay.core.security import CurrentUser, get_current_user
from chapterpay.services import eligibility, reports
from chapterpay.services.monetization_rules import MonetizationConfig


router = APIRouter(prefix="/writer-earning")


@router.get("/eligibility/{novel_id}")
async def monetization_eligibility(
    novel_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    config: MonetizationConfig = Depends(get_config),
) -> dict:
    return ok(eligibility.check_monetization_eligibility(db, user.id, novel_id, config))


@router.get("/all")
async def all_earnings(
    ecpm_rate: str | None = Query(default=None, alias="ecpmRate"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    config: MonetizationConfig = Depends(get_config),
) -> dict:
    ecpm = reports.parse_ecpm_rate(ecpm_rate, config)
    return ok(reports.writer_earnings(db, user.id, config, ecpm))


@router.get("/novel/{novel_id}")
async def novel_earnings(
    novel_id: str,
    ecpm_rate: str | None = Query(default=None, alias="ecpmRate"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    config: MonetizationConfig = Depends(get_config),
) -> dict:
    ecpm = reports.parse_ecpm_rate(ecpm_rate, config)
    return ok(reports.novel_earnings(db, user.id, novel_id, config, ecpm))


@router.get("/chapter/{novel_id}/{chapter_id}")
async def chapter_earnings(
    novel_id: str,
    chapter_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return ok(reports.chapter_earnings(db, user.id, novel_id, chapter_id))


@router.get("/ad-stats/{novel_id}")
async def ad_unlock_stats(
    novel_id: str,
    ecpm_rate: str | None = Query(default=None, alias="ecpmRate"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    config: MonetizationConfig = Depends(get_config),
) -> dict:
    ecpm = reports.parse_ecpm_rate(ecpm_rate, config)
    return ok(reports.ad_unlock_stats(db, user.id, novel_id, config, ecpm))
