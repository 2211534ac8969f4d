# liquidity/core/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Core ---
    DATABASE_URL: str = "sqlite:///./liquidity.db"
    LOG_LEVEL: str = "INFO"

    # --- Email (Resend HTTP API) ---
    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    EMAIL_FROM: str = "Liquidity Desk <noreply@liquidity.local>"

    # --- Outbound webhook (optional) ---
    LIQUIDITY_WEBHOOK_URL: str | None = None
    LIQUIDITY_WEBHOOK_SECRET: str | None = None  # signing disabled if missing

    # --- Operator chat (optional) ---
    BOT_TOKEN: str | None = None
    ADMIN_CHAT_ID: str | None = None

    # comma separated, merged with per-program admin emails
    LIQUIDITY_ADMIN_EMAILS: str | None = None

    # --- Program defaults ---
    REQUEST_NUMBER_PREFIX: str = "LIQ"
    DEFAULT_FEE_TIERS: str = (
        '[{"min_months": 0, "max_months": 12, "fee_percent": "10"},'
        ' {"min_months": 12, "max_months": 24, "fee_percent": "7"},'
        ' {"min_months": 24, "max_months": 36, "fee_percent": "5"},'
        ' {"min_months": 36, "max_months": null, "fee_percent": "3"}]'
    )
    DEFAULT_MIN_HOLDING_DAYS: int = 30
    RESERVE_LOW_RATIO: str = "0.20"

    # --- Delivery ---
    NOTIFY_CHANNEL_TIMEOUT_SECONDS: float = 10.0

    def admin_emails(self) -> list[str]:
        return split_emails(self.LIQUIDITY_ADMIN_EMAILS)


def split_emails(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


settings = Settings()
