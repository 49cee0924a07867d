from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_LEAGUES: list[str] = ["MLB", "NBA", "NFL", "MLS", "NHL", "NCAAF", "NCAAB", "UCL"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # SportsGameOdds API
    sportsgameodds_api_key: str
    odds_api_base_url: str = "https://api.sportsgameodds.com/v2"
    odds_api_page_limit: int = 50
    odds_api_max_events: int = 5000
    odds_api_retry_base_delay: float = 1.0

    # Leagues ingested by the scheduled service (JSON array in .env)
    leagues: list[str] = Field(default_factory=lambda: list(SUPPORTED_LEAGUES))

    # Polling
    poll_interval_minutes: int = 30
    lookahead_days: int = 7

    # Odds for a game are frozen this many minutes after its start time
    odds_lock_buffer_minutes: int = 10

    # Rate-limit fallback cache
    cache_ttl_seconds: int = 300

    # Maintenance
    cleanup_days: int = 30

    # Discord: optional webhook for failed ingestion cycles
    discord_webhook_url: str | None = None

    # Database
    db_path: str

    # Logging
    log_level: str = "INFO"
