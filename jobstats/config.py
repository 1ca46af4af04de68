from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SUPPORTED_DRIVERS = ["beanstalkd", "database", "redis"]


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = Field(default="sqlite:///./jobstats.db")

    # Application
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Instrumentation
    jobs_stats_enabled: bool = Field(default=True)
    supported_drivers: list[str] = Field(default_factory=lambda: list(DEFAULT_SUPPORTED_DRIVERS))


class JobsStatsConfig:
    """Instrumentation configuration from config.yml and environment."""

    def __init__(self, data: dict[str, Any], settings: "Settings") -> None:
        self.enabled: bool = settings.jobs_stats_enabled and data.get("enabled", True)
        # config.yml extends the allow-list, it never shrinks what the env declares
        drivers = list(settings.supported_drivers)
        for driver in data.get("supported_drivers", []):
            if driver not in drivers:
                drivers.append(driver)
        self.supported_drivers: list[str] = drivers
        self.max_stack_frames: int = data.get("max_stack_frames", 50)


class AppConfig:
    """Combined application configuration from .env and config.yml."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.settings = get_settings()
        self._load_yaml(config_path or Path("config.yml"))

    def _load_yaml(self, config_path: Path) -> None:
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        else:
            data = {}

        self.jobs_stats = JobsStatsConfig(data.get("jobs_stats", {}), self.settings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@lru_cache
def get_config() -> AppConfig:
    """Get cached full config instance."""
    return AppConfig()
