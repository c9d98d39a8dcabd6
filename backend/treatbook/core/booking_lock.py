from __future__ import annotations

from contextlib import contextmanager
from datetime import date
import logging
import threading
import time
from typing import Dict, Iterator, Optional
import uuid

from redis import Redis
from redis.exceptions import RedisError

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings
from .exceptions import SlotLockTimeoutException

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

_LOCAL_LOCKS: Dict[str, threading.Lock] = {}
_LOCAL_LOCKS_GUARD = threading.Lock()


def _lock_key(practitioner: str, slot_date: date) -> str:
    # Exact name, matching how the calendar query identifies a practitioner.
    return f"slot:{practitioner}:{slot_date.isoformat()}:mutex"


def _namespaced_key(key: str) -> str:
    return f"{settings.lock_namespace}:lock:{key}"


def _get_local_lock(key: str) -> threading.Lock:
    with _LOCAL_LOCKS_GUARD:
        lock = _LOCAL_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCAL_LOCKS[key] = lock
        return lock


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if not settings.redis_url:
        return None
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except RedisError as exc:
            logger.warning("slot_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def _acquire_redis_lock(
    client: Redis, key: str, token: str, ttl_s: int, deadline: float, poll_s: float
) -> Optional[bool]:
    """
    Poll ``SET NX EX`` until the key is ours or the deadline passes.

    Returns None when Redis errors out, in which case the caller proceeds
    with only the process-local lock.
    """
    while True:
        try:
            if client.set(_namespaced_key(key), token, nx=True, ex=ttl_s):
                return True
        except RedisError as exc:
            prometheus_metrics.record_slot_lock("acquire", "error")
            logger.warning(
                "slot_lock_redis_acquire_failed",
                extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None
        if time.monotonic() >= deadline:
            return False
        time.sleep(poll_s)


def _release_redis_lock(client: Redis, key: str, token: str) -> None:
    try:
        namespaced = _namespaced_key(key)
        if client.get(namespaced) == token:
            client.delete(namespaced)
            prometheus_metrics.record_slot_lock("release", "success")
        else:
            prometheus_metrics.record_slot_lock("release", "not_found")
    except RedisError as exc:
        prometheus_metrics.record_slot_lock("release", "error")
        logger.warning(
            "slot_lock_redis_release_failed",
            extra={"lock_key": key, "error": str(exc), "error_type": type(exc).__name__},
        )


@contextmanager
def practitioner_day_lock(
    practitioner: str,
    slot_date: date,
    ttl_s: Optional[int] = None,
    wait_s: Optional[float] = None,
) -> Iterator[None]:
    """
    Serialize bookings for one practitioner on one day.

    Held from before the availability check until the booking commits.
    Always takes a process-local lock; additionally takes a Redis lock when
    ``REDIS_URL`` is configured. Raises SlotLockTimeoutException if the lock
    cannot be obtained within ``wait_s`` seconds.
    """
    ttl = ttl_s if ttl_s is not None else settings.slot_lock_ttl_seconds
    wait = wait_s if wait_s is not None else settings.slot_lock_wait_seconds
    key = _lock_key(practitioner, slot_date)
    deadline = time.monotonic() + wait

    local_lock = _get_local_lock(key)
    if not local_lock.acquire(timeout=wait):
        prometheus_metrics.record_slot_lock("acquire", "timeout")
        raise SlotLockTimeoutException(practitioner, slot_date.isoformat())

    client = _get_sync_redis()
    token = uuid.uuid4().hex
    redis_held = False
    try:
        if client is None:
            if settings.redis_url:
                prometheus_metrics.record_slot_lock("acquire", "redis_unavailable")
        else:
            acquired = _acquire_redis_lock(
                client,
                key,
                token,
                ttl,
                deadline,
                settings.slot_lock_poll_interval_seconds,
            )
            if acquired is False:
                prometheus_metrics.record_slot_lock("acquire", "timeout")
                raise SlotLockTimeoutException(practitioner, slot_date.isoformat())
            redis_held = bool(acquired)

        prometheus_metrics.record_slot_lock("acquire", "success")
        try:
            yield
        finally:
            if redis_held and client is not None:
                _release_redis_lock(client, key, token)
    finally:
        local_lock.release()
