"""Redis-backed global cap on concurrently running workflow instances.

Every worker process shares one lease set per workflow pool. An instance
takes a lease before running and gives it back when done; when all leases
are taken the caller requeues itself instead of running.

Each lease expires on its own, so a lease left behind by a killed worker is
dropped once its deadline passes, however busy the pool stays.

Redis Keys:
    - workflow:{name}:leases - Sorted set of instance id -> lease deadline

Usage:
    slots = WorkflowSlots(redis_client, name="scrape", limit=5)

    if not slots.acquire(instance_id):
        raise self.retry(countdown=15)
    try:
        run_workflow()
    finally:
        slots.release(instance_id)
"""

import time
from typing import Any, Callable, Optional, Protocol

import redis


class RedisProtocol(Protocol):
    """Protocol for the sync Redis client."""

    def zadd(self, key: str, mapping: dict[str, float]) -> int: ...
    def zrem(self, key: str, *members: str) -> int: ...
    def zcard(self, key: str) -> int: ...
    def zscore(self, key: str, member: str) -> Optional[float]: ...
    def zremrangebyscore(self, key: str, min: Any, max: Any) -> int: ...


class WorkflowSlots:
    """Counting semaphore of expiring per-instance leases shared through Redis.

    ``lease_seconds`` must be at least the worker's hard task time limit, so
    a lease never expires while its instance is still running.
    """

    def __init__(
        self,
        redis_client: RedisProtocol,
        name: str = "scrape",
        limit: int = 5,
        lease_seconds: int = 960,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis_client
        self.name = name
        self.limit = limit
        self.lease_seconds = lease_seconds
        self._clock = clock
        self._key = f"workflow:{name}:leases"

    def _prune(self, now: float) -> None:
        self.redis.zremrangebyscore(self._key, "-inf", now)

    def acquire(self, instance_id: str) -> bool:
        """Try to take a lease for an instance.

        A redelivered instance that still holds its lease renews it.

        Returns:
            True if the instance holds a lease, False if all are in use.
        """
        now = self._clock()
        self._prune(now)
        deadline = now + self.lease_seconds

        if self.redis.zscore(self._key, instance_id) is not None:
            self.redis.zadd(self._key, {instance_id: deadline})
            return True

        self.redis.zadd(self._key, {instance_id: deadline})
        if self.redis.zcard(self._key) > self.limit:
            # Over limit, give it back
            self.redis.zrem(self._key, instance_id)
            return False

        return True

    def release(self, instance_id: str) -> None:
        """Give an instance's lease back."""
        self.redis.zrem(self._key, instance_id)


def get_workflow_slots(name: str = "scrape") -> WorkflowSlots:
    """Build workflow slots from settings."""
    from replyscope_core.config import get_settings

    settings = get_settings()
    return WorkflowSlots(
        redis.Redis.from_url(settings.redis_url),
        name=name,
        limit=settings.workflow_concurrency,
        lease_seconds=settings.workflow_slot_lease_seconds,
    )
