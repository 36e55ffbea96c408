from pydantic_settings import BaseSettings
from functools import lru_cache
import os


class Settings(BaseSettings):
    # Session storage
    storage_dir: str = "temp-assets"
    session_ttl_hours: float = 24
    asset_url_prefix: str = "/assets"

    # Cleanup sweep
    cleanup_schedule: str = "0 * * * *"  # cron, UTC
    cleanup_enabled: bool = True
    cleanup_run_on_start: bool = False
    cleanup_shutdown_timeout: float = 30  # seconds

    # Metadata file lock
    metadata_lock_timeout: float = 0.5  # seconds per attempt
    metadata_lock_retries: int = 10
    metadata_lock_backoff_min: float = 0.05
    metadata_lock_backoff_max: float = 2.0

    # Downloads
    fetch_timeout: float = 30
    fetch_max_retries: int = 3
    fetch_backoff_base: float = 0.5
    image_concurrency: int = 5
    css_concurrency: int = 3
    font_concurrency: int = 3
    max_image_mb: float = 10
    max_font_mb: float = 5
    max_css_mb: float = 5
    max_import_depth: int = 10

    # Export
    kit_min_size_ratio: float = 0.9

    class Config:
        # Look for .env in the repo root (two levels up from backend/pagekit/)
        env_file = os.path.join(os.path.dirname(__file__), "..", "..", ".env")
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def session_ttl_seconds(self) -> float:
        return self.session_ttl_hours * 3600


@lru_cache()
def get_settings():
    return Settings()
