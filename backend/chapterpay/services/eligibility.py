from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from chapterpay.core.errors import AuthorizationError
from chapterpay.services import catalog
from chapterpay.services.monetization_rules import (
    DEFAULT_CONFIG,
    MonetizationConfig,
    free_chapter_numbers,
    free_sample_views_gate_satisfied,
    free_views_by_chapter,
    total_free_views,
)
from chapterpay.services.subscriptions import current_subscription_status


def is_monetized(
    db: Session,
    novel_id: str,
    config: MonetizationConfig = DEFAULT_CONFIG,
    *,
    now: datetime | None = None,
) -> bool:
    """True when unlocks on the novel's locked chapters can pay its writer.

    A subscribed writer is always monetized; otherwise every sample chapter
    must be published and individually reach the views threshold.
    """
    novel = catalog.get_novel(db, novel_id)
    if not catalog.is_paid(novel):
        return False
    status = current_subscription_status(db, novel.author_id, config, now=now)
    return free_sample_views_gate_satisfied(
        chapter_number=None,
        has_subscription=status.active,
        free_chapter_views=catalog.free_chapter_views(db, novel_id, config, published_only=True),
        require_each=True,
        config=config,
    )


def check_monetization_eligibility(
    db: Session,
    requester_id: str,
    novel_id: str,
    config: MonetizationConfig = DEFAULT_CONFIG,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    novel = catalog.get_novel(db, novel_id)
    if novel.author_id != requester_id:
        raise AuthorizationError("Unauthorized - Only author can check monetization")

    status = current_subscription_status(db, novel.author_id, config, now=now)
    chapters = catalog.published_chapters(db, novel_id)
    min_chapters = config.free_chapter_limit + 1
    threshold = config.free_views_threshold

    views = free_views_by_chapter(
        (ch.chapter_number, ch.view_count) for ch in chapters if ch.chapter_number in free_chapter_numbers(config)
    )
    free_chapters = [
        {"chapterNumber": number, "viewCount": views[number], "eligible": views[number] >= threshold}
        for number in sorted(views)
    ]

    issues: list[str] = []
    paid = catalog.is_paid(novel)
    if not paid:
        issues.append("Novel is free; switch it to paid pricing to earn from unlocks")
    has_min_chapters = len(chapters) >= min_chapters
    if not has_min_chapters:
        issues.append(f"Need {min_chapters - len(chapters)} more chapters (minimum {min_chapters} required)")
    if not status.active:
        for number in free_chapter_numbers(config):
            if number not in views:
                issues.append(f"Chapter {number}: not published")
            elif views[number] < threshold:
                issues.append(f"Chapter {number}: {views[number]}/{threshold} views")

    views_ok = free_sample_views_gate_satisfied(
        chapter_number=None,
        has_subscription=status.active,
        free_chapter_views=views,
        require_each=True,
        config=config,
    )

    return {
        "novelId": novel.id,
        "isMonetized": is_monetized(db, novel.id, config, now=now),
        "eligible": paid and has_min_chapters and views_ok,
        "hasSubscription": status.active,
        "subscriptionDaysRemaining": status.days_remaining,
        "platformFeePercentage": status.platform_fee_percentage,
        "writerPercentage": 100 - status.platform_fee_percentage,
        "hasMinChapters": has_min_chapters,
        "totalChapters": len(chapters),
        "freeChaptersViewRequirement": threshold,
        "freeChapters": free_chapters,
        "freeViewsTotal": total_free_views(views),
        "issues": issues,
    }
