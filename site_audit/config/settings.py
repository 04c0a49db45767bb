"""Centralized configuration settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, field

VERSION = "1.0.0"


@dataclass
class FetcherSettings:
    """Settings for the page fetcher."""
    request_timeout: float = 8.0  # seconds, per request
    max_response_size: int = 5 * 1024 * 1024  # 5 MB
    max_redirects: int = 5
    user_agent: str = "SiteAuditBot/1.0 (+site audit)"
    # SSRF protection is on by default; local development and tests may disable it
    allow_private_addresses: bool = False


@dataclass
class CrawlerSettings:
    """Settings for site discovery."""
    default_page_budget: int = 200
    max_page_budget: int = 1000
    fetch_workers: int = 4
    politeness_delay: float = 0.1  # seconds between fetch submissions


@dataclass
class BatchSettings:
    """Settings for one time-boxed invocation of the orchestrator."""
    max_batch_seconds: float = 240.0  # leaves headroom under a 300s platform limit
    max_pages_per_batch: int = 50
    check_workers: int = 4
    probe_timeout: float = 5.0  # seconds, for requests made by checks
    site_wide_reserve_seconds: float = 30.0  # budget left before site-wide checks start


@dataclass
class ScoringSettings:
    """Settings for score aggregation."""
    critical_weight: int = 3
    recommended_weight: int = 2
    optional_weight: int = 1
    warning_credit: float = 0.5

    # Grade thresholds
    grade_a_threshold: int = 90
    grade_b_threshold: int = 75
    grade_c_threshold: int = 60
    grade_d_threshold: int = 40


@dataclass
class APISettings:
    """API-specific settings."""
    # Rate limiting for audit creation (requests per window)
    start_rate_limit: int = 10
    rate_limit_window: int = 60  # seconds

    # Background batch runner
    runner_max_workers: int = 2

    # Polling contract
    poll_interval: float = 2.0
    poll_error_interval: float = 5.0

    # CORS
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


@dataclass
class LoggingSettings:
    """Logging settings."""
    level: str = "INFO"


@dataclass
class Settings:
    """Main application settings container."""
    fetcher: FetcherSettings = field(default_factory=FetcherSettings)
    crawler: CrawlerSettings = field(default_factory=CrawlerSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    api: APISettings = field(default_factory=APISettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    debug: bool = False

    def __post_init__(self):
        """Load settings from environment variables."""
        self.debug = os.environ.get("SITE_AUDIT_DEBUG", "").lower() in ("true", "1", "yes")

        # Fetcher overrides
        if timeout := os.environ.get("SITE_AUDIT_REQUEST_TIMEOUT"):
            self.fetcher.request_timeout = float(timeout)
        if user_agent := os.environ.get("SITE_AUDIT_USER_AGENT"):
            self.fetcher.user_agent = user_agent
        if os.environ.get("SITE_AUDIT_ALLOW_PRIVATE", "").lower() in ("true", "1", "yes"):
            self.fetcher.allow_private_addresses = True

        # Crawler overrides
        if budget := os.environ.get("SITE_AUDIT_PAGE_BUDGET"):
            self.crawler.default_page_budget = int(budget)
        if workers := os.environ.get("SITE_AUDIT_FETCH_WORKERS"):
            self.crawler.fetch_workers = int(workers)

        # Batch overrides
        if seconds := os.environ.get("SITE_AUDIT_BATCH_SECONDS"):
            self.batch.max_batch_seconds = float(seconds)
        if pages := os.environ.get("SITE_AUDIT_BATCH_PAGES"):
            self.batch.max_pages_per_batch = int(pages)
        if check_workers := os.environ.get("SITE_AUDIT_CHECK_WORKERS"):
            self.batch.check_workers = int(check_workers)
        if reserve := os.environ.get("SITE_AUDIT_SITE_WIDE_RESERVE"):
            self.batch.site_wide_reserve_seconds = float(reserve)

        # API overrides
        if start_limit := os.environ.get("SITE_AUDIT_START_RATE_LIMIT"):
            self.api.start_rate_limit = int(start_limit)
        if runner_workers := os.environ.get("SITE_AUDIT_RUNNER_WORKERS"):
            self.api.runner_max_workers = int(runner_workers)
        if cors := os.environ.get("SITE_AUDIT_CORS_ORIGINS"):
            self.api.cors_origins = [o.strip() for o in cors.split(",")]

        if level := os.environ.get("SITE_AUDIT_LOG_LEVEL"):
            self.logging.level = level.upper()
        elif self.debug:
            self.logging.level = "DEBUG"


# Global settings instance
settings = Settings()
