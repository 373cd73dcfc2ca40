from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from chapterpay.core.errors import NotFoundError
from chapterpay.models.chapter import Chapter
from chapterpay.models.novel import Novel, PricingModel
from chapterpay.services.monetization_rules import (
    DEFAULT_CONFIG,
    MonetizationConfig,
    free_chapter_numbers,
    free_views_by_chapter,
)


@dataclass(frozen=True)
class ChapterMeta:
    chapter_id: str
    chapter_number: int
    novel_id: str
    author_id: str
    view_count: int
    coin_cost: int | None
    title: str
    status: str | None


def to_meta(chapter: Chapter) -> ChapterMeta:
    return ChapterMeta(
        chapter_id=chapter.id,
        chapter_number=int(chapter.chapter_number or 0),
        novel_id=chapter.novel_id,
        author_id=chapter.author_id,
        view_count=int(chapter.view_count or 0),
        coin_cost=chapter.coin_cost,
        title=chapter.title or "",
        status=chapter.status,
    )


def find_chapter(db: Session, chapter_id: str) -> ChapterMeta | None:
    chapter = db.query(Chapter).filter(Chapter.id == chapter_id).first()
    return to_meta(chapter) if chapter is not None else None


def chapter_metadata(db: Session, chapter_id: str) -> ChapterMeta:
    meta = find_chapter(db, chapter_id)
    if meta is None:
        raise NotFoundError("Chapter not found", code="chapter_not_found")
    return meta


def find_novel(db: Session, novel_id: str) -> Novel | None:
    return db.query(Novel).filter(Novel.id == novel_id).first()


def get_novel(db: Session, novel_id: str) -> Novel:
    novel = find_novel(db, novel_id)
    if novel is None:
        raise NotFoundError("Novel not found", code="novel_not_found")
    return novel


def novel_pricing_model(db: Session, novel_id: str) -> str:
    novel = get_novel(db, novel_id)
    return PricingModel.PAID if (novel.pricing_model or "").lower() == PricingModel.PAID else PricingModel.FREE


def is_paid(novel: Novel | None) -> bool:
    return novel is not None and (novel.pricing_model or "").lower() == PricingModel.PAID


def free_chapter_views(
    db: Session,
    novel_id: str,
    config: MonetizationConfig = DEFAULT_CONFIG,
    *,
    published_only: bool = False,
) -> dict[int, int]:
    numbers = list(free_chapter_numbers(config))
    q = db.query(Chapter.chapter_number, Chapter.view_count).filter(
        Chapter.novel_id == novel_id,
        Chapter.chapter_number.in_(numbers),
    )
    if published_only:
        q = q.filter(Chapter.status == "published")
    return free_views_by_chapter(q.all())


def published_chapters(db: Session, novel_id: str) -> list[Chapter]:
    return (
        db.query(Chapter)
        .filter(Chapter.novel_id == novel_id, Chapter.status == "published")
        .order_by(Chapter.chapter_number.asc())
        .all()
    )


def chapter_titles(db: Session, chapter_ids: list[str]) -> dict[str, tuple[int, str]]:
    ids = [c for c in chapter_ids if c]
    if not ids:
        return {}
    rows = db.query(Chapter.id, Chapter.chapter_number, Chapter.title).filter(Chapter.id.in_(ids)).all()
    return {cid: (int(number or 0), title or "") for cid, number, title in rows}


def novel_titles(db: Session, novel_ids: list[str]) -> dict[str, str]:
    ids = [n for n in novel_ids if n]
    if not ids:
        return {}
    rows = db.query(Novel.id, Novel.title).filter(Novel.id.in_(ids)).all()
    return {nid: (title or "") for nid, title in rows}
