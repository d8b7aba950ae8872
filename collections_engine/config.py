"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from collections_engine.domain.models import PastActionPolicy


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service
    service_name: str = "collections-engine"
    log_level: str = "INFO"

    # Dunning planner policy
    past_action_policy: PastActionPolicy = PastActionPolicy.ASSUME_COMPLETED
    recent_payment_window_days: int = 14
    review_interval_days: int = 30  # re-review date for paused or exhausted schedules


settings = Settings()
