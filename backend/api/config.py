"""
Application Configuration
Loads settings from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional
from pathlib import Path

from scraper.base import ScrapeOptions


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False

    # CORS Configuration - "*" for development
    cors_origins: List[str] = ["*"]

    # Environment - "production" runs one client at a time
    environment: str = "development"

    # Client configs and result cache
    clients_file: Optional[str] = None
    cache_file: Optional[str] = None
    cache_ttl_hours: float = 24.0
    job_retention_minutes: float = 60.0

    # Browser Configuration
    headless: bool = True
    block_resources: bool = True

    # Scraper Configuration (seconds)
    navigation_timeout: float = 45.0
    detail_timeout: float = 60.0
    wait_timeout: float = 15.0
    client_timeout: float = 300.0
    rate_limit: float = 1.5
    max_attempts: int = 3
    backoff_base: float = 2.0
    sequential_details: bool = True
    detail_concurrency: int = 5
    batch_size: int = 2
    batch_delay: float = 5.0

    # Google Sheets
    google_service_account_email: Optional[str] = None
    google_private_key: Optional[str] = None
    google_sheet_id: Optional[str] = None

    # Logging Configuration
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def effective_batch_size(self) -> int:
        """Batch size actually used; production always runs clients one by one."""
        if self.is_production:
            return 1
        return max(1, self.batch_size)

    # Paths
    @property
    def log_dir(self) -> Path:
        """Get the log directory path."""
        return Path(__file__).parent.parent.parent / "logs"

    @property
    def log_file(self) -> Path:
        """Get the log file path."""
        return self.log_dir / "backend.log"

    @property
    def data_dir(self) -> Path:
        """Get the data directory path."""
        return Path(__file__).parent.parent / "data"

    @property
    def clients_path(self) -> Path:
        return Path(self.clients_file) if self.clients_file else self.data_dir / "clients.json"

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_file) if self.cache_file else self.data_dir / "cache.json"

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    @property
    def job_retention_seconds(self) -> float:
        return self.job_retention_minutes * 60

    def scrape_options(self) -> ScrapeOptions:
        """Build the engine options from these settings."""
        return ScrapeOptions(
            headless=self.headless,
            navigation_timeout=self.navigation_timeout,
            detail_timeout=self.detail_timeout,
            wait_timeout=self.wait_timeout,
            rate_limit=self.rate_limit,
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            sequential_details=self.sequential_details,
            detail_concurrency=self.detail_concurrency,
            batch_size=self.effective_batch_size,
            batch_delay=self.batch_delay,
            client_timeout=self.client_timeout,
            block_resources=self.block_resources,
        )

    class Config:
        # Only load .env if it exists to avoid permission errors
        env_file = ".env" if Path(".env").exists() else None
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables


# Global settings instance
settings = Settings()
