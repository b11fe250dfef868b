"""
Configuration module for the directory reconciliation pipeline.
Reads configuration from environment variables and .env file.
"""
import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


class Config:
    """Configuration class that reads from environment variables."""

    def __init__(self):
        self.DATA_DIR: str = os.getenv("DATA_DIR", "data")
        self.CONTENT_DIR: str = os.getenv("CONTENT_DIR", os.path.join("content", "software"))
        # Optional: only used to share per-host pacing between concurrent runs
        self.REDIS_URL: Optional[str] = os.getenv("REDIS_URL") or None
        self.DISCOVERY_FEED_URL: Optional[str] = os.getenv("DISCOVERY_FEED_URL") or None
        self.USER_AGENT: str = os.getenv(
            "USER_AGENT",
            "Mozilla/5.0 (compatible; KetamineSoftwareDirectory/1.0; +https://ketaminesoftware.com)",
        )
        self.PROBE_TIMEOUT: float = _env_float("PROBE_TIMEOUT", 10.0)
        self.PAGE_TIMEOUT: float = _env_float("PAGE_TIMEOUT", 15.0)
        self.HOST_MIN_INTERVAL: float = _env_float("HOST_MIN_INTERVAL", 2.0)
        self.MAX_CONCURRENT_VERIFICATIONS: int = _env_int("MAX_CONCURRENT_VERIFICATIONS", 4)
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


# Global config instance
cfg = Config()
