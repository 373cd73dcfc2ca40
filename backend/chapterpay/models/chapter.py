from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, Integer, String
from sqlalchemy.sql import func

from chapterpay.core.database import Base


class Chapter(Base):
    __tablename__ = "chapters"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    novel_id = Column(String, index=True, nullable=False)
    author_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False, default="")
    chapter_number = Column(Integer, nullable=False)
    # Per-chapter coin price; NULL falls back to the configured default.
    coin_cost = Column(Integer, nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    status = Column(String, default="draft")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_chapters_novel_number", "novel_id", "chapter_number"),)
