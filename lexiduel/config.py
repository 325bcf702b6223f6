"""
Configuration management for the vocabulary duel bot
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Telegram Bot Configuration
    telegram_bot_token: str = Field(default="")

    # OpenAI Configuration (question generation)
    openai_api_key: str = Field(default="")
    openai_model: str = Field(default="gpt-4o-mini")
    openai_max_tokens: int = Field(default=1024)
    openai_temperature: float = Field(default=1.0)
    api_timeout: float = Field(default=25.0)
    use_mock_generator: bool = Field(default=False)

    # Database Configuration
    database_url: str = Field(default="sqlite:///data/lexiduel.db")

    # Application Configuration
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)
    polling_interval: float = Field(default=1.0)

    # Spaced Repetition Configuration
    default_easiness_factor: float = Field(default=2.5)
    min_easiness_factor: float = Field(default=1.3)
    max_question_stage: int = Field(default=4)

    # Duel Configuration
    duel_question_count: int = Field(default=5)
    duel_pairing_max_attempts: int = Field(default=10)
    duel_question_xp: int = Field(default=10)
    duel_win_bonus: int = Field(default=30)
    duel_draw_bonus: int = Field(default=10)
    duel_lose_bonus: int = Field(default=0)

    # Review XP by word level (1-4)
    review_xp_level_1: int = Field(default=5)
    review_xp_level_2: int = Field(default=8)
    review_xp_level_3: int = Field(default=12)
    review_xp_level_4: int = Field(default=16)

    # Streak Configuration
    streak_daily_xp_threshold: int = Field(default=30)
    streak_utc_offset_minutes: int = Field(default=210)

    # Profile Configuration
    display_name_max_length: int = Field(default=32)
    display_name_max_changes: int = Field(default=3)

    # Maintenance Configuration
    duel_in_progress_expiry_hours: int = Field(default=24)
    duel_waiting_purge_hours: int = Field(default=72)
    cleanup_interval_minutes: int = Field(default=60)

    @property
    def review_xp_by_level(self) -> dict[int, int]:
        """XP awarded for a correct review answer, keyed by word level"""
        return {
            1: self.review_xp_level_1,
            2: self.review_xp_level_2,
            3: self.review_xp_level_3,
            4: self.review_xp_level_4,
        }

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def get_database_path() -> str:
    """Get the database file path from URL"""
    settings = get_settings()
    if settings.database_url.startswith("sqlite:///"):
        return settings.database_url.replace("sqlite:///", "")
    return "data/lexiduel.db"
