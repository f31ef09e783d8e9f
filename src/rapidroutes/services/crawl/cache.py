"""Result caches and per-key single-flight for generated pairs."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Callable, Hashable, Optional, Protocol, TypeVar

from pydantic import ValidationError
from redis import Redis
from redis.exceptions import RedisError

from ...config import settings
from ...models.domain import CityQuery, ResultSet, normalize_token
from ...models.request_context import RequestContext
from ...schemas.pairs import StoredResultSet

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Normalized lane plus the options that change the generated pairs."""

    origin: tuple[str, str]
    destination: tuple[str, str]
    equipment: str
    target_min_pairs: int
    limit: int
    search_radius_miles: float

    def redis_key(self, prefix: str) -> str:
        parts = (
            *self.origin,
            *self.destination,
            self.equipment,
            str(self.target_min_pairs),
            str(self.limit),
            f"{self.search_radius_miles:g}",
        )
        return f"{prefix}:" + "|".join(part.replace(" ", "_") for part in parts)


def make_cache_key(
    origin: CityQuery,
    destination: CityQuery,
    equipment: str,
    *,
    target_min_pairs: int,
    limit: int,
    search_radius_miles: float,
) -> CacheKey:
    return CacheKey(
        origin=origin.identity,
        destination=destination.identity,
        equipment=normalize_token(equipment).upper(),
        target_min_pairs=target_min_pairs,
        limit=limit,
        search_radius_miles=float(search_radius_miles),
    )


def detach(result: ResultSet) -> ResultSet:
    return replace(result, pairs=list(result.pairs), stages=list(result.stages))


class ResultCache(Protocol):
    def get(self, key: CacheKey) -> Optional[ResultSet]:
        ...

    def put(self, key: CacheKey, result: ResultSet) -> None:
        ...

    def invalidate(self) -> None:
        ...


class LRUResultCache:
    """In-process cache bounded to `max_entries`, evicting the least recently used lane."""

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self.max_entries = max_entries or settings.cache_max_entries
        self._entries: OrderedDict[CacheKey, ResultSet] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: CacheKey) -> Optional[ResultSet]:
        with self._lock:
            result = self._entries.get(key)
            if result is None:
                return None
            self._entries.move_to_end(key)
            return detach(result)

    def put(self, key: CacheKey, result: ResultSet) -> None:
        with self._lock:
            self._entries[key] = detach(result)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cached pairs for {evicted}")

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisResultCache:
    """Cache shared between workers through Redis."""

    def __init__(self, client: Redis, ttl_seconds: Optional[int] = None, prefix: str = "pairs") -> None:
        self.redis_client = client
        self.ttl_seconds = settings.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.prefix = prefix

    def get(self, key: CacheKey) -> Optional[ResultSet]:
        try:
            raw = self.redis_client.get(key.redis_key(self.prefix))
        except RedisError as exc:
            logger.error(f"Redis get failed for {key}: {exc}")
            return None
        if not raw:
            return None
        try:
            return StoredResultSet.model_validate_json(raw).to_domain()
        except ValidationError as exc:
            logger.warning(f"Discarding unreadable cached pairs for {key}: {exc}")
            return None

    def put(self, key: CacheKey, result: ResultSet) -> None:
        ttl = self.ttl_seconds if self.ttl_seconds > 0 else None
        try:
            self.redis_client.set(
                key.redis_key(self.prefix),
                StoredResultSet.from_domain(result).model_dump_json(),
                ex=ttl,
            )
        except RedisError as exc:
            logger.error(f"Redis save failed for {key}: {exc}")

    def invalidate(self) -> None:
        try:
            for redis_key in self.redis_client.scan_iter(match=f"{self.prefix}:*"):
                self.redis_client.delete(redis_key)
        except RedisError as exc:
            logger.error(f"Redis invalidation failed: {exc}")


class _Call:
    __slots__ = ("done", "result", "error", "waiters")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result = None
        self.error: Optional[BaseException] = None
        self.waiters = 0


class SingleFlight:
    """Collapse concurrent calls for the same key into one execution.

    Followers wait for the leader's outcome but keep watching their own
    request context, so a follower can give up without affecting the build.
    """

    poll_seconds = 0.05

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[Hashable, _Call] = {}

    def waiters(self, key: Hashable) -> int:
        """Number of callers currently blocked on the in-flight call for `key`."""
        with self._lock:
            call = self._calls.get(key)
            return call.waiters if call is not None else 0

    def do(self, key: Hashable, fn: Callable[[], T], context: Optional[RequestContext] = None) -> T:
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = _Call()
                self._calls[key] = call
            else:
                call.waiters += 1

        if not leader:
            try:
                if context is None:
                    call.done.wait()
                while not call.done.wait(self.poll_seconds):
                    context.check(f"waiting on shared build for {key}")
            finally:
                with self._lock:
                    call.waiters -= 1
            if call.error is not None:
                raise call.error
            return call.result

        try:
            call.result = fn()
            return call.result
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()


def build_result_cache() -> ResultCache:
    """Create the configured result cache backend."""

    if settings.cache_backend == "redis":
        client = Redis.from_url(settings.redis_url, decode_responses=True)
        return RedisResultCache(client)
    return LRUResultCache()
