from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional


class Settings(BaseSettings):
    """Main application configuration"""

    # Supabase
    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None

    # ERP open API
    ERP_BASE_URL: str = "https://openapi.lingxing.com"
    HTTP_TIMEOUT_SECONDS: float = 60.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True

    # Sync engine
    SYNC_DELAY_SECONDS: float = 0.5  # between pages, segments and dimensions
    SYNC_TIMEZONE: str = "Asia/Shanghai"
    DEFAULT_PAGE_SIZE: int = 1000
    BATCH_SIZE: int = 500

    # Scheduler
    SYNC_CRON_HOURS: str = "1,7"

    # Table names - directory and bookkeeping
    ACCOUNTS_TABLE: str = "erp_accounts"
    SELLERS_TABLE: str = "erp_sellers"
    SYNC_STATE_TABLE: str = "erp_sync_state"
    JOB_STATUS_TABLE: str = "erp_job_task_status"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    @field_validator("SUPABASE_URL")
    @classmethod
    def validate_supabase_url(cls, v):
        if not v:
            raise ValueError("SUPABASE_URL is required")
        if not v.startswith("https://"):
            raise ValueError("SUPABASE_URL must start with https://")
        return v

    @field_validator("SYNC_DELAY_SECONDS")
    @classmethod
    def validate_delay(cls, v):
        if v < 0:
            raise ValueError("SYNC_DELAY_SECONDS must be >= 0")
        return v

    def get_supabase_key(self) -> str:
        """Return the Supabase key (SERVICE_ROLE wins over ANON)"""
        return self.SUPABASE_SERVICE_ROLE_KEY or self.SUPABASE_ANON_KEY or ""

    def get_cron_hours(self) -> list[int]:
        """Parse the scheduler hours string into a sorted list"""
        try:
            return sorted({int(h.strip()) for h in self.SYNC_CRON_HOURS.split(",") if h.strip()})
        except (ValueError, AttributeError):
            return [1, 7]


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the global Settings instance"""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
