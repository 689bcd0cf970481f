"""Content loading with an LRU cache and single-flight fetches.

The loader materializes content refs into immutable ContentUnits:
- Cache hits are served from a bounded LRU (entry count and total characters)
- Concurrent loads of the same uncached ref share one backing fetch
- A shared fetch is cancelled only when its last waiter goes away
- Entries are dropped only by invalidate() or a version mismatch found by
  revalidate(), never because of their age

All bookkeeping runs on the event loop between awaits, so it needs no lock.
"""

import asyncio
import hashlib
import inspect
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from skill_router.skills.sources import ContentSource
from skill_router.utils.errors import ContentErrorKind, ContentUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentUnit:
    """One loaded document.

    Attributes:
        ref: Content ref the document was loaded from
        text: Document text
        etag: SHA-256 of the text
        source_version: Validator reported by the source at fetch time
        loaded_at: When the document was fetched
    """

    ref: str
    text: str
    etag: str
    source_version: Optional[str] = None
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def size(self) -> int:
        return len(self.text)


def compute_etag(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class _Flight:
    """A backing fetch shared by every concurrent waiter for one ref."""

    def __init__(self, task: asyncio.Task):
        self.task = task
        self.waiters = 0


class ContentLoader:
    """Loads and caches content units from a content source.

    Example:
        loader = ContentLoader(FileSystemContentSource("skills"), max_entries=64)
        unit = await loader.load("sql/optimizer/SKILL.md", timeout=5.0)
        loader.invalidate("sql/optimizer/SKILL.md")
    """

    def __init__(
        self,
        source: ContentSource,
        max_entries: int = 128,
        max_chars: int = 2_000_000,
        default_timeout: float | None = None,
    ):
        """Initialize the loader.

        Args:
            source: Backing store to fetch from
            max_entries: Maximum number of cached units
            max_chars: Maximum total characters across cached units
            default_timeout: Fetch timeout used when load() is given none
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._source = source
        self._max_entries = max_entries
        self._max_chars = max_chars
        self._default_timeout = default_timeout

        self._cache: OrderedDict[str, ContentUnit] = OrderedDict()
        self._cached_chars = 0
        self._inflight: dict[str, _Flight] = {}
        self._generations: dict[str, int] = {}

        self._hits = 0
        self._misses = 0
        self._fetches = 0
        self._evictions = 0

    @property
    def source(self) -> ContentSource:
        return self._source

    async def load(self, ref: str, timeout: float | None = None) -> ContentUnit:
        """Load a content unit, from cache when possible.

        Args:
            ref: Content ref to load
            timeout: Seconds to wait for the backing fetch (defaults to
                the loader's default_timeout; None waits indefinitely)

        Returns:
            The loaded content unit

        Raises:
            ContentUnavailableError: NOT_FOUND if the source has no such ref,
                IO_ERROR on fetch failure or timeout
        """
        unit = self._cache.get(ref)
        if unit is not None:
            self._cache.move_to_end(ref)
            self._hits += 1
            logger.debug(f"Content cache hit: {ref}")
            return unit

        self._misses += 1
        flight = self._inflight.get(ref)
        if flight is None:
            generation = self._generations.get(ref, 0)
            flight = _Flight(asyncio.ensure_future(self._fetch(ref, generation)))
            self._inflight[ref] = flight
            flight.task.add_done_callback(lambda task, f=flight: self._finish(ref, f))
            logger.debug(f"Content cache miss, fetching: {ref}")
        else:
            logger.debug(f"Joining in-flight fetch: {ref}")

        if timeout is None:
            timeout = self._default_timeout

        flight.waiters += 1
        try:
            if timeout is None:
                return await asyncio.shield(flight.task)
            return await asyncio.wait_for(asyncio.shield(flight.task), timeout=timeout)
        except asyncio.TimeoutError:
            raise ContentUnavailableError(
                ref, ContentErrorKind.IO_ERROR, f"fetch timed out after {timeout}s"
            ) from None
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                logger.debug(f"Last waiter left, cancelling fetch: {ref}")
                # Later loads start a fresh fetch instead of joining this one.
                if self._inflight.get(ref) is flight:
                    del self._inflight[ref]
                flight.task.cancel()

    async def load_many(
        self, refs: Iterable[str], timeout: float | None = None
    ) -> list[ContentUnit]:
        """Load several refs concurrently, preserving their order.

        Raises:
            ContentUnavailableError: For the first failing ref in the given order
        """
        refs = list(refs)
        results = await asyncio.gather(
            *(self.load(ref, timeout=timeout) for ref in refs), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results

    def invalidate(self, ref: str) -> bool:
        """Force the next load of a ref to go to the backing store.

        A fetch already in flight still completes for its current waiters
        but its result is not cached.

        Returns:
            True if a cached unit was dropped
        """
        self._generations[ref] = self._generations.get(ref, 0) + 1
        self._inflight.pop(ref, None)
        unit = self._cache.pop(ref, None)
        if unit is None:
            return False
        self._cached_chars -= unit.size
        logger.debug(f"Invalidated content: {ref}")
        return True

    async def revalidate(self, ref: str) -> bool:
        """Drop a cached unit if the source reports a different version.

        Returns:
            True if the cached unit was stale and has been invalidated
        """
        unit = self._cache.get(ref)
        if unit is None or unit.source_version is None:
            return False
        current = await self._call(self._source.version, ref)
        if current == unit.source_version:
            return False
        logger.info(f"Content changed at source, invalidating: {ref}")
        return self.invalidate(ref)

    def drop_stale(self) -> list[str]:
        """Invalidate every cached unit whose source version has moved.

        Runs the source's version() inline, so only sources with a plain
        version() are checked. Coroutine validators go through revalidate().

        Returns:
            Refs that were invalidated
        """
        if inspect.iscoroutinefunction(self._source.version):
            return []
        stale = [
            ref
            for ref, unit in self._cache.items()
            if unit.source_version is not None
            and self._source.version(ref) != unit.source_version
        ]
        for ref in stale:
            self.invalidate(ref)
        if stale:
            logger.info(f"Dropped {len(stale)} stale content units: {', '.join(stale)}")
        return stale

    def clear(self) -> None:
        """Drop every cached unit and detach in-flight fetches."""
        for ref in list(self._cache) + list(self._inflight):
            self.invalidate(ref)

    def stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with hit/miss/fetch/eviction counters and cache size
        """
        return {
            "hits": self._hits,
            "misses": self._misses,
            "fetches": self._fetches,
            "evictions": self._evictions,
            "entries": len(self._cache),
            "cached_chars": self._cached_chars,
            "in_flight": len(self._inflight),
            "max_entries": self._max_entries,
            "max_chars": self._max_chars,
        }

    def __contains__(self, ref: object) -> bool:
        return ref in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    async def _call(self, fn: Callable[[str], Any], ref: str) -> Any:
        if inspect.iscoroutinefunction(fn):
            return await fn(ref)
        return await asyncio.to_thread(fn, ref)

    async def _fetch(self, ref: str, generation: int) -> ContentUnit:
        self._fetches += 1
        try:
            # Version first: a write racing the fetch then shows up as stale.
            version = await self._call(self._source.version, ref)
            text = await self._call(self._source.fetch, ref)
        except (ContentUnavailableError, asyncio.CancelledError):
            raise
        except Exception as e:
            raise ContentUnavailableError(ref, ContentErrorKind.IO_ERROR, str(e)) from e

        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ContentUnavailableError(ref, ContentErrorKind.IO_ERROR, str(e)) from e
        if not isinstance(text, str):
            raise ContentUnavailableError(
                ref, ContentErrorKind.IO_ERROR, f"source returned {type(text).__name__}"
            )

        unit = ContentUnit(ref=ref, text=text, etag=compute_etag(text), source_version=version)
        if self._generations.get(ref, 0) == generation:
            self._store(unit)
        return unit

    def _finish(self, ref: str, flight: _Flight) -> None:
        if self._inflight.get(ref) is flight:
            del self._inflight[ref]
        # Mark the outcome as retrieved; waiters already received it.
        if not flight.task.cancelled():
            flight.task.exception()

    def _store(self, unit: ContentUnit) -> None:
        previous = self._cache.pop(unit.ref, None)
        if previous is not None:
            self._cached_chars -= previous.size
        self._cache[unit.ref] = unit
        self._cached_chars += unit.size

        while self._cache and (
            len(self._cache) > self._max_entries or self._cached_chars > self._max_chars
        ):
            evicted_ref, evicted = self._cache.popitem(last=False)
            self._cached_chars -= evicted.size
            self._evictions += 1
            logger.debug(f"Evicted content: {evicted_ref}")
