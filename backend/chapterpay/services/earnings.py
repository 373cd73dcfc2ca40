from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy.orm import Session

from chapterpay.core.errors import ValidationError
from chapterpay.models.writer_earning import AD_EARNING_TYPES, EarningType, WriterEarning
from chapterpay.services import catalog
from chapterpay.services.monetization_rules import (
    DEFAULT_CONFIG,
    MonetizationConfig,
    ad_revenue_per_unlock_rupees,
    coins_required_to_unlock,
    free_sample_views_gate_satisfied,
    rupees_to_paise,
    total_free_views,
    utcnow,
    writer_share_paise,
)
from chapterpay.services.subscriptions import current_subscription_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EarningOutcome:
    recorded: bool
    reason: str
    earning_type: str
    writer_amount: int = 0
    has_subscription: bool = False
    platform_fee_percentage: int | None = None
    views_requirement_met: bool = False
    total_free_views: int = 0


@dataclass(frozen=True)
class _Attribution:
    chapter_number: int
    has_subscription: bool
    subscription_id: int | None
    platform_fee_percentage: int
    writer_percentage: int
    views_requirement_met: bool
    total_free_views: int


class EarningsAttributor:
    """Credits writers for coin and ad unlocks.

    Only this class (and the ad backfill below) writes WriterEarning rows.
    Every call either increments exactly one aggregate or records nothing.
    """

    def __init__(
        self,
        db: Session,
        config: MonetizationConfig = DEFAULT_CONFIG,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.config = config
        self.clock = clock

    def record_coin_earning(
        self,
        novel_id: str,
        writer_id: str,
        chapter_id: str,
        coin_price_rupees: Decimal | float,
    ) -> EarningOutcome:
        attribution, skipped = self._attribute(novel_id, writer_id, chapter_id, EarningType.COIN)
        if skipped is not None:
            return skipped

        price_paise = rupees_to_paise(coin_price_rupees)
        writer_amount = writer_share_paise(price_paise, attribution.writer_percentage)
        self._increment(
            writer_id=writer_id,
            novel_id=novel_id,
            chapter_id=chapter_id,
            earning_type=EarningType.COIN,
            writer_amount=writer_amount,
            attribution=attribution,
            coin_price=price_paise,
            coins_required=coins_required_to_unlock(coin_price_rupees, self.config),
        )
        logger.info(
            "earnings.coin.recorded writer=%s chapter=%s amount_paise=%s writer_pct=%s",
            writer_id,
            chapter_id,
            writer_amount,
            attribution.writer_percentage,
        )
        return self._outcome(True, "recorded", EarningType.COIN, attribution, writer_amount)

    def record_ad_earning(
        self,
        novel_id: str,
        writer_id: str,
        chapter_id: str,
        ad_type: str = EarningType.AD,
    ) -> EarningOutcome:
        ad_type = (ad_type or EarningType.AD).strip().lower()
        if ad_type not in AD_EARNING_TYPES:
            raise ValidationError(f"Unsupported ad type: {ad_type}", code="invalid_ad_type")

        attribution, skipped = self._attribute(novel_id, writer_id, chapter_id, ad_type)
        if skipped is not None:
            return skipped

        per_unlock_paise = rupees_to_paise(ad_revenue_per_unlock_rupees(self.config.ad_ecpm_rate))
        writer_amount = writer_share_paise(per_unlock_paise, attribution.writer_percentage)
        self._increment(
            writer_id=writer_id,
            novel_id=novel_id,
            chapter_id=chapter_id,
            earning_type=ad_type,
            writer_amount=writer_amount,
            attribution=attribution,
            coin_price=None,
            coins_required=None,
        )
        logger.info(
            "earnings.ad.recorded writer=%s chapter=%s type=%s amount_paise=%s writer_pct=%s",
            writer_id,
            chapter_id,
            ad_type,
            writer_amount,
            attribution.writer_percentage,
        )
        return self._outcome(True, "recorded", ad_type, attribution, writer_amount)

    def _attribute(
        self,
        novel_id: str,
        writer_id: str,
        chapter_id: str,
        earning_type: str,
    ) -> tuple[_Attribution, None] | tuple[None, EarningOutcome]:
        novel = catalog.find_novel(self.db, novel_id)
        chapter = catalog.find_chapter(self.db, chapter_id)
        if novel is None or chapter is None:
            logger.warning("earnings.skip.missing novel=%s chapter=%s", novel_id, chapter_id)
            return (None, EarningOutcome(False, "not_found", earning_type))
        if not catalog.is_paid(novel):
            logger.info("earnings.skip.free_novel novel=%s chapter=%s", novel_id, chapter_id)
            return (None, EarningOutcome(False, "free_novel", earning_type))

        status = current_subscription_status(self.db, writer_id, self.config, now=self.clock())
        free_views = catalog.free_chapter_views(self.db, novel_id, self.config)
        met = free_sample_views_gate_satisfied(
            chapter_number=chapter.chapter_number,
            has_subscription=status.active,
            free_chapter_views=free_views,
            require_each=False,
            config=self.config,
        )
        attribution = _Attribution(
            chapter_number=chapter.chapter_number,
            has_subscription=status.active,
            subscription_id=status.subscription_id,
            platform_fee_percentage=status.platform_fee_percentage,
            writer_percentage=100 - status.platform_fee_percentage,
            views_requirement_met=met,
            total_free_views=total_free_views(free_views),
        )
        if not met:
            logger.info(
                "earnings.skip.views_requirement writer=%s chapter=%s chapter_number=%s subscribed=%s free_views=%s",
                writer_id,
                chapter_id,
                chapter.chapter_number,
                status.active,
                attribution.total_free_views,
            )
            return (None, self._outcome(False, "views_requirement_not_met", earning_type, attribution, 0))
        return (attribution, None)

    def _increment(
        self,
        *,
        writer_id: str,
        novel_id: str,
        chapter_id: str,
        earning_type: str,
        writer_amount: int,
        attribution: _Attribution,
        coin_price: int | None,
        coins_required: int | None,
    ) -> None:
        now = self.clock()
        key = {
            "writer_id": writer_id,
            "novel_id": novel_id,
            "chapter_id": chapter_id,
            "earning_type": earning_type,
        }
        snapshot: dict[str, Any] = {
            "has_subscription": attribution.has_subscription,
            "subscription_id": attribution.subscription_id,
            "platform_fee_percentage": attribution.platform_fee_percentage,
            "writer_percentage_earned": attribution.writer_percentage,
            "views_requirement_met": attribution.views_requirement_met,
            "total_views_on_free_chapters": attribution.total_free_views,
            "coin_price": coin_price,
            "coins_required_to_unlock": coins_required,
            "chapter_number": attribution.chapter_number,
            "updated_at": now,
        }
        increment_aggregate(self.db, key, writer_amount, snapshot, now=now)

    @staticmethod
    def _outcome(
        recorded: bool,
        reason: str,
        earning_type: str,
        attribution: _Attribution,
        writer_amount: int,
    ) -> EarningOutcome:
        return EarningOutcome(
            recorded=recorded,
            reason=reason,
            earning_type=earning_type,
            writer_amount=writer_amount,
            has_subscription=attribution.has_subscription,
            platform_fee_percentage=attribution.platform_fee_percentage,
            views_requirement_met=attribution.views_requirement_met,
            total_free_views=attribution.total_free_views,
        )


def increment_aggregate(
    db: Session,
    key: dict[str, Any],
    amount: int,
    snapshot: dict[str, Any],
    *,
    now: datetime,
) -> None:
    table = WriterEarning.__table__
    dialect = db.get_bind().dialect.name
    values = {**key, **snapshot, "amount": int(amount), "count": 1, "created_at": now}

    if dialect in {"sqlite", "postgresql"}:
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            from sqlalchemy.dialects.postgresql import insert

        stmt = insert(table).values(**values)
        set_: dict[str, Any] = {k: stmt.excluded[k] for k in snapshot}
        set_["amount"] = table.c.amount + stmt.excluded.amount
        set_["count"] = table.c.count + 1
        stmt = stmt.on_conflict_do_update(index_elements=list(key.keys()), set_=set_)
        db.execute(stmt)
        db.commit()
        return

    changes: dict[Any, Any] = {getattr(WriterEarning, k): v for k, v in snapshot.items()}
    changes[WriterEarning.amount] = WriterEarning.amount + int(amount)
    changes[WriterEarning.count] = WriterEarning.count + 1
    updated = db.query(WriterEarning).filter_by(**key).update(changes, synchronize_session=False)
    if not updated:
        db.add(WriterEarning(**values))
    db.commit()


def backfill_ad_amounts(db: Session, ecpm_rate: float | None = None, config: MonetizationConfig = DEFAULT_CONFIG) -> dict[str, int]:
    """Fill in amounts for ad aggregates that were counted before amounts existed.

    Rows are only touched while their amount is still zero, so re-running is safe.
    """
    ecpm = float(ecpm_rate if ecpm_rate is not None else config.ad_ecpm_rate)
    per_unlock_paise = Decimal(rupees_to_paise(ad_revenue_per_unlock_rupees(ecpm)))

    rows = (
        db.query(WriterEarning.id, WriterEarning.count, WriterEarning.writer_percentage_earned)
        .filter(WriterEarning.earning_type.in_(sorted(AD_EARNING_TYPES)))
        .filter(WriterEarning.count > 0)
        .filter((WriterEarning.amount.is_(None)) | (WriterEarning.amount == 0))
        .all()
    )
    processed = 0
    updated = 0
    for row_id, count, writer_pct in rows:
        processed += 1
        pct = int(writer_pct if writer_pct is not None else 100 - config.non_subscriber_platform_fee)
        estimated = writer_share_paise(int(per_unlock_paise * int(count or 0)), pct)
        changed = (
            db.query(WriterEarning)
            .filter(WriterEarning.id == row_id)
            .filter((WriterEarning.amount.is_(None)) | (WriterEarning.amount == 0))
            .update({WriterEarning.amount: estimated}, synchronize_session=False)
        )
        if changed:
            updated += 1
            logger.info("earnings.backfill.updated id=%s count=%s writer_pct=%s amount_paise=%s", row_id, count, pct, estimated)
        else:
            logger.info("earnings.backfill.skipped id=%s", row_id)
    db.commit()
    return {"processed": processed, "updated": updated}
