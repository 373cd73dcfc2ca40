from uuid import uuid4

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from chapterpay.core.database import Base


class PricingModel:
    FREE = "free"
    PAID = "paid"


class Novel(Base):
    __tablename__ = "novels"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    title = Column(String, nullable=False)
    author_id = Column(String, index=True, nullable=False)
    pricing_model = Column(String, index=True, nullable=False, default=PricingModel.FREE)
    status = Column(String, default="draft")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
