import os
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List
import pytz


class Settings(BaseSettings):
    """Конфигурация приложения из .env"""

    # Database
    database_url: str = "sqlite+aiosqlite:///./affiliates.db"

    # Security
    webhook_secret: str = "change-me"
    attribution_secret: str = "change-me-too"
    admin_panel_user: str = "admin"
    admin_panel_pass: str = "password123"

    # Attribution
    attribution_window_days: int = 30
    attribution_cookie_name: str = "aff_ref"
    visitor_cookie_name: str = "aff_vid"

    # Commission
    default_commission_rate: float = 0.10
    average_conversion: int = 5000  # в центах, для фрод-эвристик

    # Payouts
    min_payout: int = 5000  # $50.00

    # Telegram (алерты админам, опционально)
    bot_token: str = ""
    admin_tg_ids: str = ""  # "111,222"

    # App
    timezone: str = "UTC"
    debug: bool = False
    log_level: str = "INFO"
    port: int = int(os.getenv("PORT", "8000"))

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def admin_ids(self) -> List[int]:
        if not self.admin_tg_ids:
            return []
        return [int(x.strip()) for x in self.admin_tg_ids.split(",") if x.strip()]

    @property
    def tz(self):
        return pytz.timezone(self.timezone)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
