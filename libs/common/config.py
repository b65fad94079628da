from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "test", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "Asia/Kolkata"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./ledger.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Redis (arq worker)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Internal API auth
    # Placeholder keeps local/test runs working; real deployments override via env.
    JWT_SECRET: str = "test-jwt-secret"

    # Bonus engine toggles (defaults for the settings provider)
    BONUS_PROGRESSIVE_ENABLED: bool = True
    BONUS_MILESTONE_ENABLED: bool = True
    BONUS_CONSISTENCY_ENABLED: bool = True
    BONUS_CELEBRATION_ENABLED: bool = True
    SETTINGS_CACHE_TTL_SECONDS: int = 300

    # TDS withholding
    TDS_THRESHOLD_PAISE: int = 1_000_000  # ₹10,000
    TDS_RATE_PERCENT: str = "10"

    # Profit share eligibility
    PROFIT_SHARE_MIN_TENURE_MONTHS: int = 0
    PROFIT_SHARE_MIN_INVESTMENT_PAISE: int = 0

    # Referral tiers: "completed_referrals:multiplier" pairs
    REFERRAL_TIERS: str = "0:1.0,3:1.5,5:2.0,10:2.5"

    # Risk scoring
    RISK_MAX_SCORE: int = 100
    RISK_CHARGEBACK_BASE_WEIGHT: int = 25
    RISK_CHARGEBACK_REPEAT_WEIGHT: int = 15
    RISK_HIGH_RATIO_WEIGHT: int = 20
    RISK_VERY_HIGH_RATIO_WEIGHT: int = 30
    RISK_HIGH_RATIO: float = 0.20
    RISK_VERY_HIGH_RATIO: float = 0.40
    RISK_MIN_PAYMENTS_FOR_RATIO: int = 3
    RISK_NEW_ACCOUNT_DAYS: int = 30
    RISK_NEW_ACCOUNT_WEIGHT: int = 10
    RISK_DISPUTE_LOW_WEIGHT: int = 5
    RISK_DISPUTE_MEDIUM_WEIGHT: int = 8
    RISK_DISPUTE_HIGH_WEIGHT: int = 12
    RISK_DISPUTE_CRITICAL_WEIGHT: int = 15
    RISK_BLOCK_THRESHOLD: int = 70
    RISK_HIGH_THRESHOLD: int = 50
    RISK_REVIEW_THRESHOLD: int = 30

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
