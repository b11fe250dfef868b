"""Explicit per-run context passed through every pipeline stage."""
from __future__ import annotations
import os
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from dateutil import parser as dateparser

from directory_pipeline.config import cfg
from directory_pipeline.services.rate_limiter import HostPacer, get_redis

REVIEW_SOURCES = ("capterra", "g2")

# feed file -> origin label recorded on discovered vendors
DISCOVERY_FILES = {
    "g2-discovered.json": "G2",
    "capterra-discovered.json": "Capterra",
}


def today_utc() -> str:
    return datetime.datetime.now(datetime.timezone.utc).date().isoformat()


def parse_run_date(value: Optional[str]) -> str:
    """Normalize a user-supplied date ("2025-01-31", "Jan 31 2025", ...) to YYYY-MM-DD."""
    if not value:
        return today_utc()
    try:
        return dateparser.parse(value).date().isoformat()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid run date {value!r}: {e}") from e


@dataclass
class RunContext:
    run_date: str = field(default_factory=today_utc)
    data_dir: str = field(default_factory=lambda: cfg.DATA_DIR)
    content_dir: str = field(default_factory=lambda: cfg.CONTENT_DIR)
    discovery_feed_url: Optional[str] = field(default_factory=lambda: cfg.DISCOVERY_FEED_URL)
    host_min_interval: float = field(default_factory=lambda: cfg.HOST_MIN_INTERVAL)
    max_concurrent: int = field(default_factory=lambda: cfg.MAX_CONCURRENT_VERIFICATIONS)
    probe_timeout: float = field(default_factory=lambda: cfg.PROBE_TIMEOUT)
    page_timeout: float = field(default_factory=lambda: cfg.PAGE_TIMEOUT)
    # injectable for tests / alternative network stacks
    transport: Optional[httpx.AsyncBaseTransport] = None
    feed_transport: Optional[httpx.BaseTransport] = None

    @property
    def reviews_dir(self) -> str:
        return os.path.join(self.data_dir, "reviews")

    @property
    def acquire_dir(self) -> str:
        return os.path.join(self.data_dir, "acquire")

    @property
    def mappings_path(self) -> str:
        return os.path.join(self.reviews_dir, "vendor-mappings.json")

    @property
    def aggregated_path(self) -> str:
        return os.path.join(self.reviews_dir, "aggregated-reviews.json")

    def dump_path(self, source: str) -> str:
        return os.path.join(self.reviews_dir, f"{source}-raw.json")

    def make_pacer(self) -> HostPacer:
        return HostPacer(self.host_min_interval, redis_client=get_redis())

    def verify_options(self) -> Dict[str, Any]:
        return {
            "pacer": self.make_pacer(),
            "max_concurrent": self.max_concurrent,
            "probe_timeout": self.probe_timeout,
            "page_timeout": self.page_timeout,
            "transport": self.transport,
        }
