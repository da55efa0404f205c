"""SEOPULSE — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Google Search Console ──
    gsc_access_token: str = ""
    gsc_base_url: str = "https://searchconsole.googleapis.com/webmasters/v3"
    reporting_lag_days: int = 3  # GSC data is complete ~2-3 days after the fact
    fetch_timeout_seconds: float = 30.0
    fetch_row_limit: int = 1000

    # ── Database ──
    database_url: str = ""

    # ── Collection / Reconciliation ──
    collection_concurrency: int = 4
    reconcile_lookback_days: int = 90
    default_reconcile_days: int = 7

    # ── Reporting ──
    top_n: int = 10
    wide_window_days: int = 30
    task_count: int = 5
    report_webhook_url: Optional[str] = None
    delivery_timeout_seconds: float = 15.0

    # ── AI Providers ──
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    sarvam_api_key: Optional[str] = None
    default_ai_provider: str = "sarvam"  # sarvam | openai | claude
    ai_timeout_seconds: float = 20.0

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    collection_cron: str = "0 3 * * *"  # Daily at 3 AM
    reporting_cron: str = "0 8 * * 1"  # Mondays at 8 AM

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/seopulse.db"
        return "sqlite:///./seopulse.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
