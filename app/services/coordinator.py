import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from app.utils.hash import stable_hash

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Producer = Callable[[], Awaitable[Any]]

CACHE_TTL_SECONDS = 300.0
CACHE_MAX_AGE_SECONDS = 300.0
SWEEP_INTERVAL_SECONDS = 600.0


def fingerprint(owner_id: str, content_ids: Iterable[str], mode: str, content_length: int) -> str:
    """Identity of a generation request: who, from which documents, how, and how much text."""
    return stable_hash(
        {
            "owner": str(owner_id),
            "contentIds": sorted({str(item) for item in content_ids}),
            "mode": mode,
            "contentLength": int(content_length),
        }
    )


@dataclass
class CacheEntry:
    value: Any
    created_at: float


class ContentCache:
    def __init__(
        self,
        *,
        ttl: float = CACHE_TTL_SECONDS,
        max_age: float = CACHE_MAX_AGE_SECONDS,
        clock: Clock = time.monotonic,
    ):
        self.ttl = ttl
        self.max_age = max_age
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.created_at >= self.ttl:
            return None
        return entry

    def put(self, key: str, value: Any) -> CacheEntry:
        entry = CacheEntry(value=value, created_at=self._clock())
        self._entries[key] = entry
        return entry

    def sweep(self) -> int:
        cutoff = self._clock() - self.max_age
        stale = [key for key, entry in self._entries.items() if entry.created_at <= cutoff]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # every waiter may have been cancelled; the failure is already logged in _run
    if not task.cancelled():
        task.exception()


class GenerationCoordinator:
    """Runs at most one ``produce`` per fingerprint at a time and reuses fresh results.

    Both the in-flight registry and the cache belong to the instance. The
    check-then-register step in :meth:`coalesce` contains no ``await``, so on a
    single event loop it is atomic: a second caller always sees the first
    caller's task.
    """

    def __init__(self, cache: ContentCache | None = None, *, clock: Clock = time.monotonic):
        self.cache = cache if cache is not None else ContentCache(clock=clock)
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._sweeper: asyncio.Task[None] | None = None

    async def coalesce(self, key: str, produce: Producer) -> Any:
        entry = self.cache.get(key)
        if entry is not None:
            logger.info("cache_hit", extra={"fingerprint": key})
            return entry.value

        task = self._in_flight.get(key)
        if task is not None:
            logger.info("coalesced", extra={"fingerprint": key})
        else:
            task = asyncio.ensure_future(self._run(key, produce))
            task.add_done_callback(_consume_exception)
            self._in_flight[key] = task

        # a cancelled waiter must not cancel the shared work
        return await asyncio.shield(task)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def cached_count(self) -> int:
        return len(self.cache)

    async def _run(self, key: str, produce: Producer) -> Any:
        logger.info("produce_started", extra={"fingerprint": key})
        try:
            result = await produce()
        except BaseException:
            logger.warning("produce_failed", extra={"fingerprint": key}, exc_info=True)
            raise
        else:
            self.cache.put(key, result)
            return result
        finally:
            self._in_flight.pop(key, None)

    def sweep(self) -> int:
        removed = self.cache.sweep()
        if removed:
            logger.info("cache_swept", extra={"removed": removed, "remaining": len(self.cache)})
        return removed

    def start_sweeper(self, interval: float = SWEEP_INTERVAL_SECONDS) -> asyncio.Task[None]:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(interval), name="content-cache-sweeper")
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task = self._sweeper
        self._sweeper = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()
