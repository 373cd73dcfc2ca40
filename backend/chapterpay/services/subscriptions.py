from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from chapterpay.models.subscription import SubscriptionPlan, WriterSubscription
from chapterpay.services.monetization_rules import (
    DEFAULT_CONFIG,
    MonetizationConfig,
    as_utc,
    platform_fee_percentage,
    utcnow,
)

logger = logging.getLogger(__name__)


DEFAULT_PLANS: list[dict] = [
    {
        "name": "premium",
        "display_name": "Premium Writer",
        "description": "Unlimited monetization, no minimum view requirement",
        "duration_days": 30,
        "price": 0,
        "recurring_price": 19900,
        "currency": "INR",
        "platform_fee_percentage": 10,
        "is_active": True,
        "display_order": 1,
    },
]


@dataclass(frozen=True)
class SubscriptionStatus:
    active: bool
    platform_fee_percentage: int
    subscription_id: int | None = None
    plan_name: str | None = None
    expiry_date: datetime | None = None
    days_remaining: int = 0


def get_writer_subscription(db: Session, writer_id: str) -> WriterSubscription | None:
    return db.query(WriterSubscription).filter(WriterSubscription.writer_id == writer_id).first()


def is_subscription_active(sub: WriterSubscription | None, now: datetime | None = None) -> bool:
    if sub is None:
        return False
    now = now or utcnow()
    expiry = as_utc(sub.expiry_date)
    return (sub.status or "").lower() == "active" and expiry is not None and expiry > now


def days_remaining(sub: WriterSubscription | None, now: datetime | None = None) -> int:
    if sub is None:
        return 0
    now = now or utcnow()
    expiry = as_utc(sub.expiry_date)
    if expiry is None or expiry <= now:
        return 0
    return int(math.ceil((expiry - now).total_seconds() / 86400))


def current_subscription_status(
    db: Session,
    writer_id: str,
    config: MonetizationConfig = DEFAULT_CONFIG,
    now: datetime | None = None,
) -> SubscriptionStatus:
    sub = get_writer_subscription(db, writer_id)
    active = is_subscription_active(sub, now=now)
    plan: SubscriptionPlan | None = None
    if sub is not None and sub.plan_id is not None:
        plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.id == sub.plan_id).first()
    plan_fee = plan.platform_fee_percentage if plan is not None else None
    return SubscriptionStatus(
        active=active,
        platform_fee_percentage=platform_fee_percentage(active, plan_fee, config),
        subscription_id=(sub.id if (sub is not None and active) else None),
        plan_name=(plan.name if plan is not None else None),
        expiry_date=(as_utc(sub.expiry_date) if sub is not None else None),
        days_remaining=(days_remaining(sub, now=now) if active else 0),
    )


def seed_default_plans(db: Session) -> list[SubscriptionPlan]:
    created: list[SubscriptionPlan] = []
    for plan_def in DEFAULT_PLANS:
        existing = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == plan_def["name"]).first()
        if existing is not None:
            logger.info("plans.seed.skip name=%s", plan_def["name"])
            continue
        plan = SubscriptionPlan(**plan_def)
        db.add(plan)
        created.append(plan)
        logger.info(
            "plans.seed.create name=%s writer_pct=%s platform_pct=%s",
            plan_def["name"],
            100 - int(plan_def["platform_fee_percentage"]),
            plan_def["platform_fee_percentage"],
        )
    db.commit()
    return created
