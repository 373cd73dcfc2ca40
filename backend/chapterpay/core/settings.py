import os

from chapterpay.services.monetization_rules import MonetizationConfig


def _getenv(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _getenv_csv_set(name: str) -> set[str]:
    raw = _getenv(name)
    if raw is None:
        return set()
    parts = [p.strip().lower() for p in raw.split(",")]
    return {p for p in parts if p}


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./chapterpay.db") or "sqlite:///./chapterpay.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)
        self.log_level = (_getenv("LOG_LEVEL", "INFO") or "INFO").upper()

        self.jwt_secret = _getenv("JWT_SECRET")
        self.jwt_algorithm = _getenv("JWT_ALGORITHM", "HS256") or "HS256"
        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")
        self.admin_emails = _getenv_csv_set("ADMIN_EMAILS")

        self.earnings_dispatch = (_getenv("EARNINGS_DISPATCH", "inline") or "inline").lower()

        self.free_chapter_limit = _getenv_int("FREE_CHAPTER_LIMIT", 5)
        self.ad_daily_limit = _getenv_int("AD_DAILY_LIMIT", 5)
        self.default_coin_cost = _getenv_int("DEFAULT_COIN_COST", 4)
        self.ad_ecpm_rate = _getenv_float("AD_ECPM_RATE", 40.0)
        self.coins_per_rupee = _getenv_float("COINS_PER_RUPEE", 2.0)
        self.non_subscriber_platform_fee = _getenv_int("NON_SUBSCRIBER_PLATFORM_FEE", 30)
        self.default_subscriber_platform_fee = _getenv_int("DEFAULT_SUBSCRIBER_PLATFORM_FEE", 10)
        self.free_views_threshold = _getenv_int("FREE_VIEWS_THRESHOLD", 1000)
        self.sample_earning_view_threshold = _getenv_int("SAMPLE_EARNING_VIEW_THRESHOLD", 1000)
        self.day_boundary_tz = _getenv("DAY_BOUNDARY_TZ", "UTC") or "UTC"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None:
            return ["http://localhost:5173", "http://localhost:8000"]
        if raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins

    def monetization_config(self) -> MonetizationConfig:
        return MonetizationConfig(
            free_chapter_limit=self.free_chapter_limit,
            ad_daily_limit=self.ad_daily_limit,
            default_coin_cost=self.default_coin_cost,
            ad_ecpm_rate=self.ad_ecpm_rate,
            coins_per_rupee=self.coins_per_rupee,
            non_subscriber_platform_fee=self.non_subscriber_platform_fee,
            default_subscriber_platform_fee=self.default_subscriber_platform_fee,
            free_views_threshold=self.free_views_threshold,
            sample_earning_view_threshold=self.sample_earning_view_threshold,
            day_boundary_tz=self.day_boundary_tz,
        )


settings = Settings()
