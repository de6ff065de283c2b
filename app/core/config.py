from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Template defaults (used when a template is created without explicit values)
    default_periods_per_day: int = Field(8, alias="DEFAULT_PERIODS_PER_DAY")
    default_period_duration: int = Field(45, alias="DEFAULT_PERIOD_DURATION")
    default_day_start: str = Field("09:00", alias="DEFAULT_DAY_START")
    default_working_days: List[str] = Field(
        ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY"],
        alias="DEFAULT_WORKING_DAYS",
    )

    # Weekly days on which no exam may be scheduled (JSON list in env, e.g. '["FRIDAY"]')
    exam_off_days: List[str] = Field(["SUNDAY"], alias="EXAM_OFF_DAYS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
