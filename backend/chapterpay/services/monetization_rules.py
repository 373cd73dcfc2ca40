from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class MonetizationConfig:
    """Tunable constants of the access and earnings engines.

    free_chapter_limit: chapters 1..N of a paid novel are free samples.
    ad_daily_limit: ad unlocks allowed per (reader, novel) per calendar day.
    default_coin_cost: coin price of a chapter that carries no override.
    ad_ecpm_rate: rupees paid per 1000 ad unlocks.
    coins_per_rupee: exchange rate used to price coin unlocks in rupees.
    non_subscriber_platform_fee / default_subscriber_platform_fee: percentages
        kept by the platform; the writer gets the remainder.
    free_views_threshold: free-chapter views needed before a non-subscribed
        writer earns (summed for earnings, per chapter for eligibility).
    sample_earning_view_threshold: a sample chapter must have strictly more
        views than this before a coin unlock on it credits the writer.
    day_boundary_tz: timezone whose midnight resets the daily ad cap.
    """

    free_chapter_limit: int = 5
    ad_daily_limit: int = 5
    default_coin_cost: int = 4
    ad_ecpm_rate: float = 40.0
    coins_per_rupee: float = 2.0
    non_subscriber_platform_fee: int = 30
    default_subscriber_platform_fee: int = 10
    free_views_threshold: int = 1000
    sample_earning_view_threshold: int = 1000
    day_boundary_tz: str = "UTC"


DEFAULT_CONFIG = MonetizationConfig()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _dec(value: float | int) -> Decimal:
    return Decimal(str(value))


def is_sample_chapter(chapter_number: int, config: MonetizationConfig = DEFAULT_CONFIG) -> bool:
    return int(chapter_number or 0) <= config.free_chapter_limit


def free_chapter_numbers(config: MonetizationConfig = DEFAULT_CONFIG) -> range:
    return range(1, config.free_chapter_limit + 1)


def coin_cost_for(chapter_coin_cost: int | None, config: MonetizationConfig = DEFAULT_CONFIG) -> int:
    cost = int(chapter_coin_cost or 0)
    return cost if cost > 0 else config.default_coin_cost


def platform_fee_percentage(
    has_subscription: bool,
    plan_fee: int | None,
    config: MonetizationConfig = DEFAULT_CONFIG,
) -> int:
    if not has_subscription:
        return config.non_subscriber_platform_fee
    if plan_fee is None:
        return config.default_subscriber_platform_fee
    return max(0, min(100, int(plan_fee)))


def free_sample_views_gate_satisfied(
    *,
    chapter_number: int | None,
    has_subscription: bool,
    free_chapter_views: dict[int, int],
    require_each: bool,
    config: MonetizationConfig = DEFAULT_CONFIG,
) -> bool:
    """Shared views gate for earnings attribution and eligibility reporting.

    ``free_chapter_views`` maps each existing sample chapter number to its view
    count. With ``require_each`` every sample chapter must exist and reach the
    threshold on its own (eligibility); otherwise their summed views must reach
    it (earnings). ``chapter_number`` is the chapter being earned on; pass None
    to evaluate the novel as a whole.
    """
    if chapter_number is not None and is_sample_chapter(chapter_number, config):
        return False
    if has_subscription:
        return True

    threshold = config.free_views_threshold
    if require_each:
        for number in free_chapter_numbers(config):
            if number not in free_chapter_views:
                return False
            if int(free_chapter_views[number] or 0) < threshold:
                return False
        return True
    return total_free_views(free_chapter_views) >= threshold


def total_free_views(free_chapter_views: dict[int, int]) -> int:
    return sum(int(v or 0) for v in free_chapter_views.values())


def should_credit_coin_unlock(
    chapter_number: int,
    view_count: int,
    config: MonetizationConfig = DEFAULT_CONFIG,
) -> bool:
    if not is_sample_chapter(chapter_number, config):
        return True
    return int(view_count or 0) > config.sample_earning_view_threshold


def coin_price_rupees(coin_cost: int, config: MonetizationConfig = DEFAULT_CONFIG) -> Decimal:
    return _dec(coin_cost) / _dec(config.coins_per_rupee)


def rupees_to_paise(rupees: Decimal | float | int) -> int:
    return _half_up(_dec(rupees) * 100)


def paise_to_rupees(paise: int) -> float:
    return float(Decimal(int(paise or 0)) / 100)


def writer_share_paise(gross_paise: int, writer_percentage: int) -> int:
    return _half_up(Decimal(int(gross_paise)) * Decimal(int(writer_percentage)) / 100)


def coins_required_to_unlock(price_rupees: Decimal | float, config: MonetizationConfig = DEFAULT_CONFIG) -> int:
    return _half_up(_dec(price_rupees) * _dec(config.coins_per_rupee))


def ad_revenue_per_unlock_rupees(ecpm_rate: float) -> Decimal:
    return _dec(ecpm_rate) / 1000


def estimate_ad_earnings(
    total_unlocks: int,
    ecpm_rate: float,
    writer_percentage: int,
) -> dict[str, float]:
    gross = _dec(max(0, int(total_unlocks or 0))) / 1000 * _dec(ecpm_rate)
    writer = gross * Decimal(int(writer_percentage)) / 100
    platform = gross - writer
    return {
        "estimated_earnings": round(float(gross), 2),
        "writer_earnings": round(float(writer), 2),
        "platform_earnings": round(float(platform), 2),
    }


def day_window(now: datetime, config: MonetizationConfig = DEFAULT_CONFIG) -> tuple[datetime, datetime]:
    tz = ZoneInfo(config.day_boundary_tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(tz)
    start = datetime.combine(local.date(), time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return (start.astimezone(timezone.utc), end.astimezone(timezone.utc))


def free_views_by_chapter(rows: Iterable[tuple[int, int]]) -> dict[int, int]:
    # A chapter number held by several rows counts its weakest row.
    out: dict[int, int] = {}
    for number, views in rows:
        if number is None:
            continue
        views = int(views or 0)
        out[int(number)] = min(out[int(number)], views) if int(number) in out else views
    return out
