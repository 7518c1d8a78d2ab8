from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock

import redis

from collabrio.config import settings

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
  reset_at: float
  count: int


def redis_from_settings() -> redis.Redis | None:
  if not settings.redis_url:
    return None
  try:
    return redis.Redis.from_url(settings.redis_url, decode_responses=True, socket_connect_timeout=1, socket_timeout=1)
  except ValueError as exc:
    logger.warning("invalid REDIS_URL, rate limits stay in memory: %s", exc)
    return None


class RateLimiter:
  """
  Fixed-window rate limiter.

  Counters live in Redis when it is configured, so every replica shares them.
  When Redis is unset or unreachable the limiter counts in process memory.
  """

  def __init__(self, redis_client: redis.Redis | None = None) -> None:
    self._lock = Lock()
    self._buckets: dict[str, _Bucket] = {}
    self._redis = redis_client

  def hit(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    """
    if self._redis is not None:
      try:
        return self._hit_redis(key, limit=limit, window_seconds=window_seconds)
      except redis.RedisError as exc:
        logger.warning("redis rate limit unavailable, counting in memory: %s", exc)

    now = time.time()
    with self._lock:
      b = self._buckets.get(key)
      if b is None or now >= b.reset_at:
        self._buckets[key] = _Bucket(reset_at=now + window_seconds, count=1)
        return True, 0
      if b.count >= limit:
        retry = max(1, int(b.reset_at - now))
        return False, retry
      b.count += 1
      return True, 0

  def _hit_redis(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    rk = f"rl:{key}"
    pipe = self._redis.pipeline()
    pipe.incr(rk, 1)
    pipe.ttl(rk)
    count, ttl = pipe.execute()
    if int(count) == 1 or int(ttl) < 0:
      self._redis.expire(rk, int(window_seconds))
      ttl = int(window_seconds)
    if int(count) > int(limit):
      return False, max(1, int(ttl))
    return True, 0

  def reset_prefix(self, prefix: str) -> None:
    with self._lock:
      for k in list(self._buckets.keys()):
        if k.startswith(prefix):
          del self._buckets[k]
    if self._redis is not None:
      try:
        for rk in self._redis.scan_iter(match=f"rl:{prefix}*"):
          self._redis.delete(rk)
      except redis.RedisError as exc:
        logger.warning("could not reset redis rate limits for %s: %s", prefix, exc)


limiter = RateLimiter(redis_from_settings())
