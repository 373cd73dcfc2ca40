from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chapterpay.core.errors import ConflictError, NotFoundError, ValidationError
from chapterpay.models.ad_unlock_log import AdUnlockLog
from chapterpay.models.chapter_access import UNLOCKED_ACCESS_TYPES, AccessType
from chapterpay.models.coin_transaction import CoinTransaction, CoinTransactionType
from chapterpay.models.novel import PricingModel
from chapterpay.models.unlock_history import UnlockHistory, UnlockMethod
from chapterpay.models.user import User
from chapterpay.models.writer_earning import AD_EARNING_TYPES, EarningType
from chapterpay.services import catalog, entitlements
from chapterpay.services.catalog import ChapterMeta
from chapterpay.services.earnings_queue import EarningJob, EarningsQueue
from chapterpay.services.monetization_rules import (
    MonetizationConfig,
    as_utc,
    coin_cost_for,
    coin_price_rupees,
    day_window,
    is_sample_chapter,
    should_credit_coin_unlock,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseResult:
    chapter_id: str
    novel_id: str
    chapter_number: int
    purchased_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapterId": self.chapter_id,
            "novelId": self.novel_id,
            "chapterNumber": self.chapter_number,
            "accessType": AccessType.PURCHASED,
            "purchasedAt": self.purchased_at.isoformat(),
        }


@dataclass(frozen=True)
class CoinUnlockResult:
    chapter_id: str
    novel_id: str
    chapter_number: int
    coins_spent: int
    remaining_coins: int
    unlocked_at: datetime
    earning_enqueued: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapterId": self.chapter_id,
            "novelId": self.novel_id,
            "chapterNumber": self.chapter_number,
            "coinsSpent": self.coins_spent,
            "remainingCoins": self.remaining_coins,
            "unlockedAt": self.unlocked_at.isoformat(),
        }


@dataclass(frozen=True)
class AdUnlockResult:
    chapter_id: str
    novel_id: str
    chapter_number: int
    remaining_ad_unlocks_today: int
    unlocked_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapterId": self.chapter_id,
            "novelId": self.novel_id,
            "chapterNumber": self.chapter_number,
            "remainingAdUnlocksToday": self.remaining_ad_unlocks_today,
            "unlockedAt": self.unlocked_at.isoformat(),
        }


@dataclass(frozen=True)
class AdWatchResult:
    novel_id: str
    chapter_id: str | None
    used_today: int
    remaining_today: int
    recorded_at: datetime
    earning_enqueued: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "novelId": self.novel_id,
            "chapterId": self.chapter_id,
            "usedAdUnlocksToday": self.used_today,
            "remainingAdUnlocksToday": self.remaining_today,
            "recordedAt": self.recorded_at.isoformat(),
        }


@dataclass(frozen=True)
class AdStatus:
    novel_id: str
    daily_limit: int
    used_today: int
    remaining_today: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "novelId": self.novel_id,
            "dailyLimit": self.daily_limit,
            "usedAdUnlocksToday": self.used_today,
            "remainingAdUnlocksToday": self.remaining_today,
        }


class UnlockEngine:
    """Purchase, coin and ad unlock flows.

    Every precondition is checked before anything is written; a rejected
    unlock leaves balances, grants and logs untouched. Writer earnings are
    handed to the earnings queue only after the unlock committed.
    """

    def __init__(
        self,
        db: Session,
        config: MonetizationConfig,
        earnings: EarningsQueue,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.config = config
        self.earnings = earnings
        self.clock = clock

    def _now(self) -> datetime:
        return as_utc(self.clock())

    def _lockable_chapter(self, chapter_id: str, action: str) -> ChapterMeta:
        chapter = catalog.chapter_metadata(self.db, chapter_id)
        if catalog.novel_pricing_model(self.db, chapter.novel_id) != PricingModel.PAID:
            raise ConflictError(f"This chapter is in a free novel and cannot be {action}", code="free_novel")
        if is_sample_chapter(chapter.chapter_number, self.config):
            raise ConflictError(
                f"Chapters 1-{self.config.free_chapter_limit} are free and cannot be {action}",
                code="free_chapter",
            )
        return chapter

    def purchase_chapter(self, user_id: str, chapter_id: str) -> PurchaseResult:
        chapter = self._lockable_chapter(chapter_id, "purchased")
        existing = entitlements.get_grant(self.db, user_id, chapter_id)
        if existing is not None and existing.access_type == AccessType.PURCHASED:
            logger.info("unlock.purchase.rejected user=%s chapter=%s reason=already_purchased", user_id, chapter_id)
            raise ConflictError("You have already purchased this chapter", code="already_purchased")
        self._reject_if_unlocked(existing, user_id, chapter_id, "purchase")

        now = self._now()
        row = entitlements.grant(self.db, user_id, chapter_id, chapter.novel_id, AccessType.PURCHASED, now=now)
        logger.info("unlock.purchase.ok user=%s chapter=%s", user_id, chapter_id)
        return PurchaseResult(
            chapter_id=chapter_id,
            novel_id=chapter.novel_id,
            chapter_number=chapter.chapter_number,
            purchased_at=as_utc(row.accessed_at) or now,
        )

    def unlock_by_coins(self, user_id: str, chapter_id: str) -> CoinUnlockResult:
        chapter = self._lockable_chapter(chapter_id, "unlocked with coins")
        existing = entitlements.get_grant(self.db, user_id, chapter_id)
        self._reject_if_unlocked(existing, user_id, chapter_id, "coins")

        balance = self._balance(user_id)
        cost = coin_cost_for(chapter.coin_cost, self.config)
        if balance < cost:
            logger.info("unlock.coins.rejected user=%s chapter=%s reason=insufficient_coins cost=%s balance=%s", user_id, chapter_id, cost, balance)
            raise self._insufficient(cost, balance)

        now = self._now()
        try:
            changed = (
                self.db.query(User)
                .filter(User.id == user_id, User.coins >= cost)
                .update({User.coins: User.coins - cost}, synchronize_session=False)
            )
            if not changed:
                self.db.rollback()
                raise self._insufficient(cost, self._balance(user_id))

            remaining = int(self.db.query(User.coins).filter(User.id == user_id).scalar() or 0)
            entitlements.grant(self.db, user_id, chapter_id, chapter.novel_id, AccessType.COIN, now=now, commit=False)
            self.db.add(
                UnlockHistory(
                    user_id=user_id,
                    chapter_id=chapter_id,
                    novel_id=chapter.novel_id,
                    unlock_method=UnlockMethod.COIN,
                    coins_spent=cost,
                    unlocked_at=now,
                )
            )
            self.db.add(
                CoinTransaction(
                    user_id=user_id,
                    type=CoinTransactionType.SPENT,
                    amount=cost,
                    reason="Chapter unlock",
                    description=f"Unlocked chapter {chapter.chapter_number}",
                    balance_after=remaining,
                    related_item=chapter_id,
                    created_at=now,
                )
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("unlock.coins.race user=%s chapter=%s", user_id, chapter_id)
            raise ConflictError("You have already unlocked this chapter", code="already_unlocked")

        logger.info("unlock.coins.ok user=%s chapter=%s cost=%s balance=%s", user_id, chapter_id, cost, remaining)

        enqueued = False
        if should_credit_coin_unlock(chapter.chapter_number, chapter.view_count, self.config):
            self.earnings.enqueue(
                EarningJob.coin(chapter.novel_id, chapter.author_id, chapter_id, coin_price_rupees(cost, self.config))
            )
            enqueued = True
        else:
            logger.info("earnings.skip.sample_views chapter=%s views=%s", chapter_id, chapter.view_count)

        return CoinUnlockResult(
            chapter_id=chapter_id,
            novel_id=chapter.novel_id,
            chapter_number=chapter.chapter_number,
            coins_spent=cost,
            remaining_coins=remaining,
            unlocked_at=now,
            earning_enqueued=enqueued,
        )

    def unlock_by_ads(self, user_id: str, chapter_id: str) -> AdUnlockResult:
        chapter = self._lockable_chapter(chapter_id, "unlocked with ads")
        existing = entitlements.get_grant(self.db, user_id, chapter_id)
        self._reject_if_unlocked(existing, user_id, chapter_id, "ads")

        now = self._now()
        used = self.ads_used_today(user_id, chapter.novel_id, now=now)
        self._check_daily_cap(user_id, chapter.novel_id, used)

        try:
            self.db.add(AdUnlockLog(user_id=user_id, novel_id=chapter.novel_id, chapter_id=chapter_id, unlocked_at=now))
            entitlements.grant(self.db, user_id, chapter_id, chapter.novel_id, AccessType.AD, now=now, commit=False)
            self.db.add(
                UnlockHistory(
                    user_id=user_id,
                    chapter_id=chapter_id,
                    novel_id=chapter.novel_id,
                    unlock_method=UnlockMethod.AD,
                    coins_spent=0,
                    unlocked_at=now,
                )
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("unlock.ads.race user=%s chapter=%s", user_id, chapter_id)
            raise ConflictError("You have already unlocked this chapter", code="already_unlocked")

        remaining = max(0, self.config.ad_daily_limit - used - 1)
        logger.info("unlock.ads.ok user=%s chapter=%s remaining_today=%s", user_id, chapter_id, remaining)
        self.earnings.enqueue(EarningJob.ad(chapter.novel_id, chapter.author_id, chapter_id))

        return AdUnlockResult(
            chapter_id=chapter_id,
            novel_id=chapter.novel_id,
            chapter_number=chapter.chapter_number,
            remaining_ad_unlocks_today=remaining,
            unlocked_at=now,
        )

    def record_ad_watch(
        self,
        user_id: str,
        novel_id: str,
        chapter_id: str | None = None,
        ad_type: str | None = None,
    ) -> AdWatchResult:
        ad_type = (ad_type or EarningType.AD).strip().lower()
        if ad_type not in AD_EARNING_TYPES:
            raise ValidationError(f"Unsupported ad type: {ad_type}", code="invalid_ad_type")

        novel = catalog.get_novel(self.db, novel_id)
        chapter: ChapterMeta | None = None
        if chapter_id:
            chapter = catalog.chapter_metadata(self.db, chapter_id)
            if chapter.novel_id != novel.id:
                raise ValidationError("Chapter does not belong to this novel", code="chapter_novel_mismatch")

        now = self._now()
        used = self.ads_used_today(user_id, novel.id, now=now)
        self._check_daily_cap(user_id, novel.id, used)

        self.db.add(AdUnlockLog(user_id=user_id, novel_id=novel.id, chapter_id=chapter_id or None, unlocked_at=now))
        self.db.add(
            UnlockHistory(
                user_id=user_id,
                chapter_id=chapter_id or None,
                novel_id=novel.id,
                unlock_method=UnlockMethod.AD,
                coins_spent=0,
                unlocked_at=now,
            )
        )
        self.db.commit()
        logger.info("ads.watch.recorded user=%s novel=%s chapter=%s type=%s", user_id, novel.id, chapter_id, ad_type)

        enqueued = False
        if (
            chapter is not None
            and catalog.is_paid(novel)
            and not is_sample_chapter(chapter.chapter_number, self.config)
        ):
            self.earnings.enqueue(EarningJob.ad(novel.id, chapter.author_id, chapter.chapter_id, ad_type))
            enqueued = True

        return AdWatchResult(
            novel_id=novel.id,
            chapter_id=chapter_id or None,
            used_today=used + 1,
            remaining_today=max(0, self.config.ad_daily_limit - used - 1),
            recorded_at=now,
            earning_enqueued=enqueued,
        )

    def ad_unlock_status(self, user_id: str, novel_id: str) -> AdStatus:
        novel = catalog.get_novel(self.db, novel_id)
        used = self.ads_used_today(user_id, novel.id, now=self._now())
        return AdStatus(
            novel_id=novel.id,
            daily_limit=self.config.ad_daily_limit,
            used_today=used,
            remaining_today=max(0, self.config.ad_daily_limit - used),
        )

    def ads_used_today(self, user_id: str, novel_id: str, *, now: datetime | None = None) -> int:
        start, end = day_window(now or self._now(), self.config)
        count = (
            self.db.query(func.count(AdUnlockLog.id))
            .filter(AdUnlockLog.user_id == user_id, AdUnlockLog.novel_id == novel_id)
            .filter(AdUnlockLog.unlocked_at >= start, AdUnlockLog.unlocked_at < end)
            .scalar()
        )
        return int(count or 0)

    def unlock_history(
        self,
        user_id: str,
        novel_id: str | None = None,
        limit: int = 20,
        skip: int = 0,
    ) -> dict[str, Any]:
        limit = max(1, min(int(limit or 20), 100))
        skip = max(0, int(skip or 0))

        q = self.db.query(UnlockHistory).filter(UnlockHistory.user_id == user_id)
        if novel_id:
            q = q.filter(UnlockHistory.novel_id == novel_id)
        total = q.count()
        rows = q.order_by(UnlockHistory.unlocked_at.desc(), UnlockHistory.id.desc()).offset(skip).limit(limit).all()

        chapters = catalog.chapter_titles(self.db, [r.chapter_id for r in rows])
        novels = catalog.novel_titles(self.db, [r.novel_id for r in rows])
        history = []
        for r in rows:
            number, title = chapters.get(r.chapter_id, (None, None)) if r.chapter_id else (None, None)
            unlocked_at = as_utc(r.unlocked_at)
            history.append(
                {
                    "unlockId": r.id,
                    "chapterId": r.chapter_id,
                    "chapterTitle": title,
                    "chapterNumber": number,
                    "novelId": r.novel_id,
                    "novelTitle": novels.get(r.novel_id),
                    "unlockMethod": r.unlock_method,
                    "coinsSpent": int(r.coins_spent or 0),
                    "unlockedAt": unlocked_at.isoformat() if unlocked_at else None,
                }
            )
        return {"history": history, "total": int(total), "limit": limit, "skip": skip}

    @staticmethod
    def _reject_if_unlocked(existing: Any, user_id: str, chapter_id: str, method: str) -> None:
        # Any unlocked grant blocks every unlock method, so a reader never pays twice.
        if existing is not None and existing.access_type in UNLOCKED_ACCESS_TYPES:
            logger.info(
                "unlock.%s.rejected user=%s chapter=%s reason=already_unlocked existing=%s",
                method,
                user_id,
                chapter_id,
                existing.access_type,
            )
            raise ConflictError("You have already unlocked this chapter", code="already_unlocked")

    def _balance(self, user_id: str) -> int:
        coins = self.db.query(User.coins).filter(User.id == user_id).first()
        if coins is None:
            raise NotFoundError("User not found", code="user_not_found")
        return int(coins[0] or 0)

    @staticmethod
    def _insufficient(cost: int, balance: int) -> ConflictError:
        return ConflictError(
            f"Insufficient coins. Required: {cost}, Available: {balance}",
            code="insufficient_coins",
            required=cost,
            available=balance,
        )

    def _check_daily_cap(self, user_id: str, novel_id: str, used: int) -> None:
        limit = self.config.ad_daily_limit
        if used >= limit:
            logger.info("unlock.ads.rejected user=%s novel=%s reason=daily_ad_limit_reached used=%s", user_id, novel_id, used)
            raise ConflictError(
                f"Daily ad limit reached. Maximum {limit} ads per novel per day",
                code="daily_ad_limit_reached",
                usedAdUnlocksToday=used,
                remainingAdUnlocksToday=0,
            )
