# directory_pipeline/services/rate_limiter.py
"""
Per-host politeness pacing for outbound vendor-site requests.

- HostPacer(min_interval_seconds, redis_client=None)
    `await pacer.wait(host)` blocks until at least min_interval_seconds have
    passed since the previous request start to the same host. Requests to
    different hosts do not wait on each other.

- reserve_host_slot(host, min_interval_seconds)
    Cross-process slot reservation (Redis SET NX PX). Returns True if this
    process may send to `host` now.

Notes:
- Redis is optional and only consulted when cfg.REDIS_URL is set
  (directory_pipeline.config.cfg). If Redis is unavailable, pacing is
  process-local only.
"""
from __future__ import annotations
import time
import asyncio
import logging
from typing import Dict, Optional
from urllib.parse import urlparse

from redis import Redis, RedisError

from directory_pipeline.config import cfg

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

_redis_client: Optional[Redis] = None


def get_redis() -> Optional[Redis]:
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    if not cfg.REDIS_URL:
        return None
    try:
        _redis_client = Redis.from_url(cfg.REDIS_URL, decode_responses=True)
        # quick ping to validate connection
        _redis_client.ping()
        logger.debug("Connected to Redis for host pacing")
        return _redis_client
    except (RedisError, ValueError) as e:
        logger.warning("Redis not available for host pacing: %s", e)
        _redis_client = None
        return None


def host_from_url(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


# Key: pace:host:<host>
def reserve_host_slot(host: str, min_interval_seconds: float, r: Optional[Redis] = None) -> bool:
    """
    Return True if no other process has sent a request to `host` within the
    last min_interval_seconds, and claim the slot. Without Redis, always True.
    """
    r = r if r is not None else get_redis()
    if not r or min_interval_seconds <= 0:
        return True
    key = f"pace:host:{host}"
    try:
        ok = r.set(key, str(time.time()), nx=True, px=int(min_interval_seconds * 1000))
        return bool(ok)
    except RedisError as e:
        logger.warning("Redis error in reserve_host_slot for %s: %s", host, e)
        return True


class HostPacer:
    """Enforces a minimum interval between request starts to the same host."""

    def __init__(self, min_interval_seconds: float, redis_client: Optional[Redis] = None,
                 clock=time.monotonic, sleep=asyncio.sleep):
        self.min_interval = max(0.0, float(min_interval_seconds))
        self._redis = redis_client
        self._clock = clock
        self._sleep = sleep
        self._last_start: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, host: str) -> asyncio.Lock:
        lock = self._locks.get(host)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[host] = lock
        return lock

    async def wait(self, host: str) -> None:
        if not host:
            return
        async with self._lock_for(host):
            last = self._last_start.get(host)
            if last is not None:
                delta = self._clock() - last
                if delta < self.min_interval:
                    to_wait = self.min_interval - delta
                    logger.debug("Pacing: sleeping %.3fs for host %s", to_wait, host)
                    await self._sleep(to_wait)
            if self._redis is not None:
                while not reserve_host_slot(host, self.min_interval, self._redis):
                    logger.debug("Pacing: host %s reserved by another process", host)
                    await self._sleep(min(self.min_interval, 0.5))
            self._last_start[host] = self._clock()
