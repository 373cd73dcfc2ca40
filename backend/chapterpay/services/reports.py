from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from chapterpay.core.errors import AuthorizationError, NotFoundError, ValidationError
from chapterpay.models.writer_earning import AD_EARNING_TYPES, EARNING_TYPES, WriterEarning
from chapterpay.services import catalog
from chapterpay.services.monetization_rules import (
    DEFAULT_CONFIG,
    MonetizationConfig,
    as_utc,
    estimate_ad_earnings,
    paise_to_rupees,
)
from chapterpay.services.subscriptions import current_subscription_status


def parse_ecpm_rate(raw: Any, config: MonetizationConfig = DEFAULT_CONFIG) -> float:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return float(config.ad_ecpm_rate)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("ecpmRate must be a number", code="invalid_ecpm_rate")
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise ValidationError("ecpmRate must be a non-negative number", code="invalid_ecpm_rate")
    return value


def _by_type_zeroes() -> dict[str, int]:
    return {t: 0 for t in EARNING_TYPES}


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def _ad_estimate(rows: list[WriterEarning], ecpm_rate: float, writer_pct: int) -> dict[str, Any]:
    unlocks = sum(int(r.count or 0) for r in rows if r.earning_type in AD_EARNING_TYPES)
    out: dict[str, Any] = {"totalAdUnlocks": unlocks, "ecpmRate": ecpm_rate, "writerPercentage": writer_pct}
    est = estimate_ad_earnings(unlocks, ecpm_rate, writer_pct)
    out["estimatedEarnings"] = est["estimated_earnings"]
    out["writerEarnings"] = est["writer_earnings"]
    out["platformEarnings"] = est["platform_earnings"]
    return out


def _writer_pct(db: Session, writer_id: str, config: MonetizationConfig) -> int:
    return 100 - current_subscription_status(db, writer_id, config).platform_fee_percentage


def _owned_novel(db: Session, writer_id: str, novel_id: str, action: str):
    novel = catalog.get_novel(db, novel_id)
    if novel.author_id != writer_id:
        raise AuthorizationError(f"Unauthorized - Only author can view {action}")
    return novel


def writer_earnings(
    db: Session,
    writer_id: str,
    config: MonetizationConfig = DEFAULT_CONFIG,
    ecpm_rate: float | None = None,
) -> dict[str, Any]:
    rows = (
        db.query(WriterEarning)
        .filter(WriterEarning.writer_id == writer_id)
        .order_by(WriterEarning.novel_id.asc(), WriterEarning.chapter_number.asc(), WriterEarning.earning_type.asc())
        .all()
    )
    novels = catalog.novel_titles(db, [r.novel_id for r in rows])
    chapters = catalog.chapter_titles(db, [r.chapter_id for r in rows])

    by_type = _by_type_zeroes()
    by_novel: dict[str, dict[str, Any]] = {}
    all_rows = []
    for r in rows:
        amount = int(r.amount or 0)
        by_type[r.earning_type] = by_type.get(r.earning_type, 0) + amount
        bucket = by_novel.setdefault(
            r.novel_id,
            {"novelId": r.novel_id, "novelTitle": novels.get(r.novel_id), **_by_type_zeroes(), "total": 0},
        )
        bucket[r.earning_type] = bucket.get(r.earning_type, 0) + amount
        bucket["total"] += amount
        number, title = chapters.get(r.chapter_id, (r.chapter_number, None))
        all_rows.append(
            {
                "novelId": r.novel_id,
                "novelTitle": novels.get(r.novel_id),
                "chapterId": r.chapter_id,
                "chapterNumber": number,
                "chapterTitle": title,
                "earningType": r.earning_type,
                "amount": amount,
                "amountRupees": paise_to_rupees(amount),
                "count": int(r.count or 0),
                "createdAt": _iso(r.created_at),
                "updatedAt": _iso(r.updated_at),
            }
        )

    total = sum(by_type.values())
    ecpm = ecpm_rate if ecpm_rate is not None else float(config.ad_ecpm_rate)
    return {
        "writerId": writer_id,
        "totalEarnings": total,
        "totalEarningsRupees": paise_to_rupees(total),
        "byType": by_type,
        "byNovel": list(by_novel.values()),
        "allEarnings": all_rows,
        "adEstimate": _ad_estimate(rows, ecpm, _writer_pct(db, writer_id, config)),
    }


def novel_earnings(
    db: Session,
    writer_id: str,
    novel_id: str,
    config: MonetizationConfig = DEFAULT_CONFIG,
    ecpm_rate: float | None = None,
) -> dict[str, Any]:
    novel = _owned_novel(db, writer_id, novel_id, "earnings")
    rows = (
        db.query(WriterEarning)
        .filter(WriterEarning.writer_id == writer_id, WriterEarning.novel_id == novel_id)
        .order_by(WriterEarning.chapter_number.asc(), WriterEarning.earning_type.asc())
        .all()
    )
    chapters = catalog.chapter_titles(db, [r.chapter_id for r in rows])

    by_type = _by_type_zeroes()
    by_chapter: dict[str, dict[str, Any]] = {}
    for r in rows:
        amount = int(r.amount or 0)
        by_type[r.earning_type] = by_type.get(r.earning_type, 0) + amount
        number, title = chapters.get(r.chapter_id, (r.chapter_number, None))
        bucket = by_chapter.setdefault(
            r.chapter_id,
            {"chapterId": r.chapter_id, "chapterNumber": number, "chapterTitle": title, **_by_type_zeroes(), "total": 0},
        )
        bucket[r.earning_type] = bucket.get(r.earning_type, 0) + amount
        bucket["total"] += amount

    total = sum(by_type.values())
    ecpm = ecpm_rate if ecpm_rate is not None else float(config.ad_ecpm_rate)
    return {
        "novelId": novel.id,
        "novelTitle": novel.title,
        "totalEarnings": total,
        "totalEarningsRupees": paise_to_rupees(total),
        "byType": by_type,
        "byChapter": list(by_chapter.values()),
        "adEstimate": _ad_estimate(rows, ecpm, _writer_pct(db, writer_id, config)),
    }


def chapter_earnings(db: Session, writer_id: str, novel_id: str, chapter_id: str) -> dict[str, Any]:
    chapter = catalog.chapter_metadata(db, chapter_id)
    if chapter.novel_id != novel_id:
        raise NotFoundError("Chapter not found in this novel", code="chapter_not_found")
    if chapter.author_id != writer_id:
        raise AuthorizationError("Unauthorized - Only author can view earnings")

    rows = (
        db.query(WriterEarning)
        .filter(WriterEarning.writer_id == writer_id, WriterEarning.chapter_id == chapter_id)
        .all()
    )
    base = {"chapterId": chapter_id, "chapterNumber": chapter.chapter_number, "novelId": chapter.novel_id}
    if not rows:
        return {**base, "hasEarnings": False, "message": "No earnings yet for this chapter"}

    amounts = _by_type_zeroes()
    counts = _by_type_zeroes()
    for r in rows:
        amounts[r.earning_type] = amounts.get(r.earning_type, 0) + int(r.amount or 0)
        counts[r.earning_type] = counts.get(r.earning_type, 0) + int(r.count or 0)
    total = sum(amounts.values())
    created = min((as_utc(r.created_at) for r in rows if r.created_at), default=None)
    updated = max((as_utc(r.updated_at) for r in rows if r.updated_at), default=None)

    return {
        **base,
        "novelTitle": catalog.novel_titles(db, [chapter.novel_id]).get(chapter.novel_id),
        "hasEarnings": True,
        "earnings": {**amounts, "total": total, "totalRupees": paise_to_rupees(total)},
        "counts": {"coinUnlocks": counts["coin"], "adUnlocks": counts["ad"], "interstitialImpressions": counts["interstitial"]},
        "createdAt": _iso(created),
        "updatedAt": _iso(updated),
    }


def ad_unlock_stats(
    db: Session,
    writer_id: str,
    novel_id: str,
    config: MonetizationConfig = DEFAULT_CONFIG,
    ecpm_rate: float | None = None,
) -> dict[str, Any]:
    novel = _owned_novel(db, writer_id, novel_id, "stats")
    rows = (
        db.query(WriterEarning)
        .filter(WriterEarning.writer_id == writer_id, WriterEarning.novel_id == novel_id)
        .filter(WriterEarning.earning_type.in_(sorted(AD_EARNING_TYPES)))
        .order_by(WriterEarning.chapter_number.asc())
        .all()
    )
    chapters = catalog.chapter_titles(db, [r.chapter_id for r in rows])

    by_chapter: dict[str, dict[str, Any]] = {}
    recorded = 0
    for r in rows:
        recorded += int(r.amount or 0)
        number, title = chapters.get(r.chapter_id, (r.chapter_number, None))
        bucket = by_chapter.setdefault(
            r.chapter_id,
            {"chapterId": r.chapter_id, "chapterNumber": number, "chapterTitle": title, "adUnlocks": 0},
        )
        bucket["adUnlocks"] += int(r.count or 0)

    ecpm = ecpm_rate if ecpm_rate is not None else float(config.ad_ecpm_rate)
    return {
        "novelId": novel.id,
        "novelTitle": novel.title,
        **_ad_estimate(rows, ecpm, _writer_pct(db, writer_id, config)),
        "recordedWriterEarnings": recorded,
        "recordedWriterEarningsRupees": paise_to_rupees(recorded),
        "byChapter": list(by_chapter.values()),
    }
