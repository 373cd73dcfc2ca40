from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from chapterpay.core.database import Base


class UnlockMethod:
    FREE = "free"
    COIN = "coin"
    AD = "ad"


class UnlockHistory(Base):
    __tablename__ = "unlock_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    # NULL for novel-level ad watches that name no chapter.
    chapter_id = Column(String, index=True, nullable=True)
    novel_id = Column(String, index=True, nullable=False)
    unlock_method = Column(String, index=True, nullable=False)
    coins_spent = Column(Integer, default=0)
    unlocked_at = Column(DateTime(timezone=True), server_default=func.now())
