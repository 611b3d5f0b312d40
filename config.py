import os
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        series_months: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.series_months = series_months

    @property
    def zone(self) -> Optional[ZoneInfo]:
        # Empty means the process's system local time zone.
        if not self.timezone:
            return None
        return ZoneInfo(self.timezone)


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("MONEYTRACKER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "transactions.db"
    database_url = os.getenv("MONEYTRACKER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("MONEYTRACKER_TIMEZONE", "").strip()
    log_level = os.getenv("MONEYTRACKER_LOG_LEVEL", "INFO").upper()
    series_months = int(os.getenv("MONEYTRACKER_SERIES_MONTHS", "12"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        series_months=series_months,
    )
