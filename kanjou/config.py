"""Configuration settings for kanjou."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


def default_data_dir() -> Path:
    """Default directory for the local store (~/.kanjou)."""
    return Path.home() / ".kanjou"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    # Local-only mode: no remote calls at all
    local_mode: bool = False

    # Local store
    data_dir: Path = default_data_dir()

    # Sync timing (seconds)
    sync_interval_seconds: float = 5 * 60
    startup_sync_delay: float = 3.0
    catch_up_sync_delay: float = 30.0
    # Delay before reloading state after a restore
    reload_delay: float = 5.0

    log_level: str = "WARNING"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    @property
    def remote_enabled(self) -> bool:
        """True when an endpoint and key are set and local-only mode is off."""
        return bool(not self.local_mode and self.supabase_url and self.supabase_anon_key)

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir) / "kanjou.db"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
