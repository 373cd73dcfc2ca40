from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from chapterpay.core.database import Base


class AccessType:
    FREE = "free"
    AD = "ad"
    COIN = "coin"
    PURCHASED = "purchased"
    LOCKED = "locked"


# Higher rank wins on re-grant; a grant is never downgraded.
ACCESS_RANK: dict[str, int] = {
    AccessType.FREE: 0,
    AccessType.AD: 1,
    AccessType.COIN: 2,
    AccessType.PURCHASED: 3,
}

UNLOCKED_ACCESS_TYPES = frozenset({AccessType.AD, AccessType.COIN, AccessType.PURCHASED})


class ChapterAccess(Base):
    __tablename__ = "chapter_access"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    chapter_id = Column(String, index=True, nullable=False)
    novel_id = Column(String, index=True, nullable=False)
    access_type = Column(String, index=True, nullable=False, default=AccessType.FREE)
    accessed_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "chapter_id", name="uq_chapter_access_user_chapter"),)
