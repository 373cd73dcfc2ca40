from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from chapterpay.core.database import Base


class EarningType:
    COIN = "coin"
    AD = "ad"
    INTERSTITIAL = "interstitial"


EARNING_TYPES = (EarningType.COIN, EarningType.AD, EarningType.INTERSTITIAL)
AD_EARNING_TYPES = frozenset({EarningType.AD, EarningType.INTERSTITIAL})


class WriterEarning(Base):
    __tablename__ = "writer_earnings"

    id = Column(Integer, primary_key=True, index=True)
    writer_id = Column(String, index=True, nullable=False)
    novel_id = Column(String, index=True, nullable=False)
    chapter_id = Column(String, index=True, nullable=False)
    earning_type = Column(String, index=True, nullable=False)
    # Writer-credited amount in paise; only ever incremented.
    amount = Column(Integer, nullable=False, default=0)
    count = Column(Integer, nullable=False, default=0)

    # Snapshot of the most recent contributing unlock.
    has_subscription = Column(Boolean, default=False)
    subscription_id = Column(Integer, nullable=True)
    platform_fee_percentage = Column(Integer, default=30)
    writer_percentage_earned = Column(Integer, default=70)
    views_requirement_met = Column(Boolean, default=True)
    total_views_on_free_chapters = Column(Integer, default=0)
    coin_price = Column(Integer, nullable=True)
    coins_required_to_unlock = Column(Integer, nullable=True)
    chapter_number = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("writer_id", "novel_id", "chapter_id", "earning_type", name="uq_writer_earnings_key"),
        Index("ix_writer_earnings_writer_novel", "writer_id", "novel_id"),
    )
