"""Configuration settings for Cairn."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from cairn.utils import get_cairn_home


class CairnConfig(BaseSettings):
    """Process settings loaded from ``CAIRN_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CAIRN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path | None = None  # Falls back to get_cairn_home()
    db_name: str = "cairn.db"
    log_level: str = "INFO"
    busy_timeout_ms: int = 5000

    def resolved_data_dir(self) -> Path:
        return self.data_dir if self.data_dir is not None else get_cairn_home()

    def db_path(self) -> Path:
        return self.resolved_data_dir() / self.db_name


@lru_cache
def get_config() -> CairnConfig:
    """Get cached config instance."""
    return CairnConfig()
