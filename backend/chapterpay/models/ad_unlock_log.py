from sqlalchemy import Column, DateTime, Index, Integer, String
from sqlalchemy.sql import func

from chapterpay.core.database import Base


class AdUnlockLog(Base):
    __tablename__ = "ad_unlock_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    novel_id = Column(String, index=True, nullable=False)
    chapter_id = Column(String, index=True, nullable=True)
    unlocked_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_ad_unlock_logs_user_novel_time", "user_id", "novel_id", "unlocked_at"),)
