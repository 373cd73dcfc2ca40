from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from chapterpay.models.writer_earning import EarningType
from chapterpay.services.earnings import EarningOutcome, EarningsAttributor
from chapterpay.services.monetization_rules import DEFAULT_CONFIG, MonetizationConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EarningJob:
    kind: str
    novel_id: str
    writer_id: str
    chapter_id: str
    coin_price_rupees: Decimal | None = None
    ad_type: str = EarningType.AD

    @classmethod
    def coin(cls, novel_id: str, writer_id: str, chapter_id: str, coin_price_rupees: Decimal) -> "EarningJob":
        return cls(EarningType.COIN, novel_id, writer_id, chapter_id, coin_price_rupees=coin_price_rupees)

    @classmethod
    def ad(cls, novel_id: str, writer_id: str, chapter_id: str, ad_type: str = EarningType.AD) -> "EarningJob":
        return cls(EarningType.AD, novel_id, writer_id, chapter_id, ad_type=ad_type)


class EarningsQueue(Protocol):
    def enqueue(self, job: EarningJob) -> EarningOutcome | None: ...


def run_earning_job(db: Session, job: EarningJob, config: MonetizationConfig = DEFAULT_CONFIG) -> EarningOutcome | None:
    """Run one attribution job; failures are logged and never raised."""
    try:
        attributor = EarningsAttributor(db, config)
        if job.kind == EarningType.COIN:
            return attributor.record_coin_earning(
                job.novel_id,
                job.writer_id,
                job.chapter_id,
                job.coin_price_rupees if job.coin_price_rupees is not None else Decimal("0"),
            )
        return attributor.record_ad_earning(job.novel_id, job.writer_id, job.chapter_id, job.ad_type)
    except Exception:
        logger.exception(
            "earnings.job.failed kind=%s writer=%s novel=%s chapter=%s",
            job.kind,
            job.writer_id,
            job.novel_id,
            job.chapter_id,
        )
        try:
            db.rollback()
        except Exception:
            logger.exception("earnings.job.rollback_failed chapter=%s", job.chapter_id)
        return None


class InlineEarningsQueue:
    """Runs each job immediately on the request's session, after the unlock committed."""

    def __init__(self, db: Session, config: MonetizationConfig = DEFAULT_CONFIG) -> None:
        self.db = db
        self.config = config

    def enqueue(self, job: EarningJob) -> EarningOutcome | None:
        return run_earning_job(self.db, job, self.config)


def _run_in_new_session(session_factory: Callable[[], Session], job: EarningJob, config: MonetizationConfig) -> None:
    db = session_factory()
    try:
        run_earning_job(db, job, config)
    finally:
        db.close()


class BackgroundEarningsQueue:
    """Defers jobs to FastAPI background tasks, each with its own session."""

    def __init__(
        self,
        background_tasks: BackgroundTasks,
        session_factory: Callable[[], Session],
        config: MonetizationConfig = DEFAULT_CONFIG,
    ) -> None:
        self.background_tasks = background_tasks
        self.session_factory = session_factory
        self.config = config

    def enqueue(self, job: EarningJob) -> EarningOutcome | None:
        self.background_tasks.add_task(_run_in_new_session, self.session_factory, job, self.config)
        logger.info("earnings.job.scheduled kind=%s chapter=%s", job.kind, job.chapter_id)
        return None
