from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chapterpay.core.errors import AuthorizationError, ValidationError
from chapterpay.models.chapter_access import ACCESS_RANK, UNLOCKED_ACCESS_TYPES, AccessType, ChapterAccess
from chapterpay.models.user import User
from chapterpay.services import catalog
from chapterpay.services.catalog import ChapterMeta
from chapterpay.services.monetization_rules import (
    DEFAULT_CONFIG,
    MonetizationConfig,
    as_utc,
    is_sample_chapter,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    chapter_id: str
    novel_id: str
    chapter_number: int
    can_access: bool
    access_type: str
    reason: str
    requires_purchase: bool = False
    granted_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "chapterId": self.chapter_id,
            "novelId": self.novel_id,
            "chapterNumber": self.chapter_number,
            "canAccess": self.can_access,
            "accessType": self.access_type,
            "reason": self.reason,
        }
        if self.requires_purchase:
            out["requiresPurchase"] = True
        if self.granted_at is not None:
            out["grantedAt"] = self.granted_at.isoformat()
        return out


def get_grant(db: Session, user_id: str, chapter_id: str) -> ChapterAccess | None:
    return (
        db.query(ChapterAccess)
        .filter(ChapterAccess.user_id == user_id, ChapterAccess.chapter_id == chapter_id)
        .first()
    )


def grant(
    db: Session,
    user_id: str,
    chapter_id: str,
    novel_id: str,
    access_type: str,
    *,
    now: datetime | None = None,
    commit: bool = True,
) -> ChapterAccess:
    """Upsert the (user, chapter) grant.

    A re-grant of the same or a higher tier replaces the record; a lower tier
    leaves the existing grant untouched. With ``commit=False`` the caller owns
    the transaction and a racing duplicate surfaces as IntegrityError on flush.
    """
    if access_type not in ACCESS_RANK:
        raise ValidationError(f"Unknown access type: {access_type}", code="invalid_access_type")
    now = now or utcnow()

    existing = get_grant(db, user_id, chapter_id)
    if existing is not None:
        if ACCESS_RANK[access_type] >= ACCESS_RANK.get(existing.access_type, 0):
            existing.access_type = access_type
            existing.novel_id = novel_id
            existing.accessed_at = now
        row = existing
    else:
        row = ChapterAccess(
            user_id=user_id,
            chapter_id=chapter_id,
            novel_id=novel_id,
            access_type=access_type,
            accessed_at=now,
            created_at=now,
        )
        db.add(row)

    if not commit:
        db.flush()
        return row

    try:
        db.commit()
    except IntegrityError:
        # Another request inserted the same (user, chapter) first; retry as an update.
        db.rollback()
        existing = get_grant(db, user_id, chapter_id)
        if existing is None:
            raise
        if ACCESS_RANK[access_type] >= ACCESS_RANK.get(existing.access_type, 0):
            existing.access_type = access_type
            existing.accessed_at = now
            db.commit()
        row = existing
    db.refresh(row)
    return row


def _decide(
    chapter: ChapterMeta,
    pricing_model: str,
    user_id: str | None,
    existing: ChapterAccess | None,
    config: MonetizationConfig,
) -> AccessDecision:
    base = {"chapter_id": chapter.chapter_id, "novel_id": chapter.novel_id, "chapter_number": chapter.chapter_number}

    if pricing_model != "paid":
        return AccessDecision(**base, can_access=True, access_type=AccessType.FREE, reason="Free novel - all chapters accessible")

    if is_sample_chapter(chapter.chapter_number, config):
        return AccessDecision(
            **base,
            can_access=True,
            access_type=AccessType.FREE,
            reason=f"Chapters 1-{config.free_chapter_limit} are free in paid novels",
        )

    if not user_id:
        return AccessDecision(
            **base,
            can_access=False,
            access_type=AccessType.LOCKED,
            reason="Please login to purchase this chapter",
            requires_purchase=True,
        )

    if existing is not None and existing.access_type in UNLOCKED_ACCESS_TYPES:
        reasons = {
            AccessType.PURCHASED: "Chapter purchased",
            AccessType.COIN: "Chapter unlocked with coins",
            AccessType.AD: "Chapter unlocked by watching ads",
        }
        return AccessDecision(
            **base,
            can_access=True,
            access_type=existing.access_type,
            reason=reasons[existing.access_type],
            granted_at=as_utc(existing.accessed_at),
        )

    return AccessDecision(
        **base,
        can_access=False,
        access_type=AccessType.LOCKED,
        reason="Chapter is locked. Please purchase to read.",
        requires_purchase=True,
    )


def has_access(
    db: Session,
    user_id: str | None,
    chapter_id: str,
    config: MonetizationConfig = DEFAULT_CONFIG,
    *,
    now: datetime | None = None,
) -> AccessDecision:
    chapter = catalog.chapter_metadata(db, chapter_id)
    pricing = catalog.novel_pricing_model(db, chapter.novel_id)
    existing = get_grant(db, user_id, chapter_id) if user_id else None
    decision = _decide(chapter, pricing, user_id, existing, config)

    # Free-sample reads in a paid novel are tracked for signed-in readers only.
    if (
        user_id
        and pricing == "paid"
        and decision.access_type == AccessType.FREE
        and (existing is None or existing.access_type == AccessType.FREE)
    ):
        grant(db, user_id, chapter_id, chapter.novel_id, AccessType.FREE, now=now)
        logger.info("access.free_sample.logged user=%s chapter=%s", user_id, chapter_id)

    return decision


def novel_access_map(
    db: Session,
    user_id: str,
    novel_id: str,
    config: MonetizationConfig = DEFAULT_CONFIG,
) -> dict[str, Any]:
    novel = catalog.get_novel(db, novel_id)
    pricing = catalog.novel_pricing_model(db, novel_id)
    chapters = catalog.published_chapters(db, novel_id)

    grants = db.query(ChapterAccess).filter(ChapterAccess.user_id == user_id, ChapterAccess.novel_id == novel_id).all()
    by_chapter = {g.chapter_id: g for g in grants}

    items: list[dict[str, Any]] = []
    for ch in chapters:
        meta = catalog.to_meta(ch)
        decision = _decide(meta, pricing, user_id, by_chapter.get(ch.id), config)
        row = decision.to_dict()
        row["title"] = meta.title
        items.append(row)

    return {
        "novelId": novel.id,
        "pricingModel": pricing,
        "totalChapters": len(items),
        "chapters": items,
    }


def chapter_access_stats(db: Session, requester_id: str, chapter_id: str) -> dict[str, Any]:
    chapter = catalog.chapter_metadata(db, chapter_id)
    if chapter.author_id != requester_id:
        raise AuthorizationError("Unauthorized - Only author can view access stats")

    grants = (
        db.query(ChapterAccess)
        .filter(ChapterAccess.chapter_id == chapter_id)
        .order_by(ChapterAccess.accessed_at.desc())
        .all()
    )
    user_ids = list({g.user_id for g in grants})
    users = {u.id: u for u in db.query(User).filter(User.id.in_(user_ids)).all()} if user_ids else {}

    by_type: dict[str, list[dict[str, Any]]] = {t: [] for t in ACCESS_RANK}
    for g in grants:
        u = users.get(g.user_id)
        by_type.setdefault(g.access_type, []).append(
            {
                "userId": g.user_id,
                "username": (u.username if u else None),
                "accessedAt": (as_utc(g.accessed_at).isoformat() if g.accessed_at else None),
            }
        )

    return {
        "chapterId": chapter_id,
        "chapterNumber": chapter.chapter_number,
        "novelId": chapter.novel_id,
        "totalAccess": len(grants),
        "countsByType": {t: len(rows) for t, rows in by_type.items()},
        "usersByType": by_type,
    }
