"""
Unified Run Configuration
=========================
Single source of truth for ALL crawler defaults and runtime limits.

The fetcher, the discovery cache and the crawl orchestrator all read from
this object.  CLI flags populate it; nothing in the crawler reads the
process environment directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "base_url": "https://www.examtopics.com",
    "connect_timeout_seconds": 10,
    "timeout_seconds": 20,           # read timeout per request
    "max_retries": 3,                # retries after the first attempt
    "initial_backoff": 1.0,          # seconds before the first retry
    "backoff_factor": 2.0,
    "max_jitter": 0.5,               # uniform 0..max_jitter seconds added per retry
    "max_concurrency": 15,           # in-flight fetches across every phase
    "requests_per_second": 2.0,
    "pool_maxsize": 100,             # keep-alive connections held by the session
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/132.0.0.0 Safari/537.36"
    ),
    "referer": "https://www.examtopics.com/",
    # Provider discovery tuning
    "discovery_attempts": 3,
    "discovery_retry_pause": 0.6,
    "min_provider_floor": 150,       # adequacy floor when no category count is declared
    "category_coverage": 0.8,        # share of declared categories that counts as complete
    # Discovery cache
    "cache_ttl_hours": 24,
    "cache_path": None,              # None = per-user cache directory
    "debug": False,
}


@dataclass
class CrawlerRunConfig:
    """
    Unified configuration consumed by every crawler subsystem.

    Populate via:
      - ``CrawlerRunConfig()``                   → all defaults
      - ``CrawlerRunConfig(max_concurrency=5)``  → override one value
      - ``CrawlerRunConfig.from_cli_args(ns)``   → from argparse Namespace
    """

    # ---- Target ----
    base_url: str = _DEFAULTS["base_url"]

    # ---- Transport ----
    connect_timeout_seconds: float = _DEFAULTS["connect_timeout_seconds"]
    timeout_seconds: float = _DEFAULTS["timeout_seconds"]
    pool_maxsize: int = _DEFAULTS["pool_maxsize"]

    # ---- Retry policy ----
    max_retries: int = _DEFAULTS["max_retries"]
    initial_backoff: float = _DEFAULTS["initial_backoff"]
    backoff_factor: float = _DEFAULTS["backoff_factor"]
    max_jitter: float = _DEFAULTS["max_jitter"]

    # ---- Politeness ----
    max_concurrency: int = _DEFAULTS["max_concurrency"]
    requests_per_second: float = _DEFAULTS["requests_per_second"]

    # ---- Identity ----
    user_agent: str = _DEFAULTS["user_agent"]
    referer: str = _DEFAULTS["referer"]

    # ---- Provider discovery ----
    discovery_attempts: int = _DEFAULTS["discovery_attempts"]
    discovery_retry_pause: float = _DEFAULTS["discovery_retry_pause"]
    min_provider_floor: int = _DEFAULTS["min_provider_floor"]
    category_coverage: float = _DEFAULTS["category_coverage"]

    # ---- Discovery cache ----
    cache_ttl_hours: float = _DEFAULTS["cache_ttl_hours"]
    cache_path: Optional[str] = _DEFAULTS["cache_path"]

    # ---- Diagnostics ----
    debug: bool = _DEFAULTS["debug"]

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args) -> "CrawlerRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        return cls(
            max_concurrency=getattr(args, "workers", None) or _DEFAULTS["max_concurrency"],
            requests_per_second=getattr(args, "rate", None) or _DEFAULTS["requests_per_second"],
            timeout_seconds=getattr(args, "timeout", None) or _DEFAULTS["timeout_seconds"],
            max_retries=getattr(args, "max_retries", _DEFAULTS["max_retries"]),
            cache_path=getattr(args, "cache_path", None),
            debug=bool(getattr(args, "debug", False)),
        )

    @property
    def timeout(self) -> tuple:
        """``(connect, read)`` tuple in the shape ``requests`` expects."""
        return (self.connect_timeout_seconds, self.timeout_seconds)

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, target: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("CRAWL RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Target:           {target}")
        logger.info(f"  Site:             {self.base_url}")
        logger.info(f"  Concurrency:      {self.max_concurrency} in-flight requests")
        logger.info(f"  Rate Limit:       {self.requests_per_second} requests/sec")
        logger.info(f"  Timeout:          {self.connect_timeout_seconds}s connect / {self.timeout_seconds}s read")
        logger.info(f"  Retries:          {self.max_retries} (backoff {self.initial_backoff}s x{self.backoff_factor})")
        logger.info(f"  Cache TTL:        {self.cache_ttl_hours}h")
        if self.cache_path:
            logger.info(f"  Cache File:       {self.cache_path}")
        if self.debug:
            logger.info(f"  Debug:            Enabled")
        logger.info("=" * 60)
