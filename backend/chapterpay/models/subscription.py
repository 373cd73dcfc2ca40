from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from chapterpay.core.database import Base


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True)
    display_name = Column(String)
    description = Column(String, nullable=True)
    duration_days = Column(Integer, default=30)
    # Minor currency units (paise).
    price = Column(Integer, default=0)
    recurring_price = Column(Integer, nullable=True)
    currency = Column(String, default="INR")
    platform_fee_percentage = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True)
    display_order = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class WriterSubscription(Base):
    __tablename__ = "writer_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    writer_id = Column(String, index=True, unique=True)
    plan_id = Column(Integer, index=True)
    status = Column(String, index=True, default="active")
    start_date = Column(DateTime(timezone=True), server_default=func.now())
    expiry_date = Column(DateTime(timezone=True), nullable=False)
    is_free_trial = Column(Boolean, default=False)
    auto_renew = Column(Boolean, default=True)
    payment_provider = Column(String, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
