"""Search interface over the in-memory payroll index."""

from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from payfinder.errors import IndexNotReadyError
from payfinder.index.cache import RecencyCache
from payfinder.index.indexer import SearchIndex, build_index
from payfinder.ingestion.loader import BulkLoader, LoadStats
from payfinder.models import PayrollRecord

LOGGER = logging.getLogger(__name__)

Lookup = Callable[[SearchIndex, str], List[PayrollRecord]]


@dataclass(slots=True)
class SearchResult:
    query: str
    kind: str
    records: List[PayrollRecord]

    @property
    def found(self) -> bool:
        return bool(self.records)


class Searcher:
    """High-level API to query the payroll index.

    The index is loaded in the background with :meth:`load_async`; queries
    issued before it is published block until it is ready. Each load builds
    a fresh :class:`SearchIndex` and publishes it by swapping one reference.
    """

    def __init__(self, cache: RecencyCache | None = None, *, cache_size: int = 50) -> None:
        self.cache: RecencyCache = cache if cache is not None else RecencyCache(max_size=cache_size)
        self.last_error: Optional[BaseException] = None
        self.last_stats: Optional[LoadStats] = None
        self._index: Optional[SearchIndex] = None
        self._generation = 0
        self._ready = threading.Event()
        self._publish_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> "Searcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    @property
    def index(self) -> Optional[SearchIndex]:
        return self._index

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        return self._ready.wait(timeout)

    def publish(self, index: SearchIndex) -> SearchIndex:
        """Make ``index`` the one served to queries."""
        with self._publish_lock:
            self._generation += 1
            published = dataclasses.replace(index, generation=self._generation)
            self._index = published
            self.cache.clear()
            self._ready.set()
        LOGGER.info("Published index generation %d (%d records)", published.generation, len(published))
        return published

    def load(self, loader: BulkLoader, path: Path | None = None) -> SearchIndex:
        """Load the source, build an index and publish it.

        On failure the current index stays in place. If nothing was ever
        published an empty index is published so waiting queries resume.
        """
        try:
            stats = loader.load(path)
            index = build_index(stats.records)
        except Exception as exc:
            self.last_error = exc
            LOGGER.error("Failed to load payroll data: %s", exc)
            if self._index is None:
                self.publish(build_index([]))
            raise

        # The index owns the records now.
        stats.records = []
        self.last_stats = stats
        self.last_error = None
        return self.publish(index)

    def load_async(self, loader: BulkLoader, path: Path | None = None) -> "Future[SearchIndex]":
        """Start :meth:`load` on a worker thread and return immediately."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="payfinder-load")
        return self._executor.submit(self.load, loader, path)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _wait_for_index(self, timeout: float | None) -> SearchIndex:
        if not self._ready.wait(timeout):
            raise IndexNotReadyError("Payroll index is still loading")
        index = self._index
        if index is None:
            raise IndexNotReadyError("Payroll index has not been published")
        return index

    def _cached_query(self, kind: str, query: str, lookup: Lookup, timeout: float | None) -> List[PayrollRecord]:
        key = f"{kind}:{query.upper()}"
        cached = self.cache.get(key)
        current = self._index
        if cached is not None and current is not None and cached[0] == current.generation:
            LOGGER.debug("Cache hit for %s", key)
            return list(cached[1])

        index = self._wait_for_index(timeout)
        results = lookup(index, query)
        self.cache.set(key, (index.generation, tuple(results)))
        LOGGER.debug("Found %d records for %s", len(results), key)
        return results

    def search_by_rfc(self, rfc: str, *, timeout: float | None = None) -> List[PayrollRecord]:
        return self._cached_query("rfc", rfc, SearchIndex.search_by_rfc, timeout)

    def search_by_name(self, name: str, *, timeout: float | None = None) -> List[PayrollRecord]:
        return self._cached_query("name", name, SearchIndex.search_by_name, timeout)

    def search(self, query: str, *, timeout: float | None = None) -> SearchResult:
        """Try the query as an RFC first, then as a name."""
        text = query.strip()
        if not text:
            return SearchResult(query=text, kind="none", records=[])

        records = self.search_by_rfc(text, timeout=timeout)
        if records:
            return SearchResult(query=text, kind="rfc", records=records)
        return SearchResult(query=text, kind="name", records=self.search_by_name(text, timeout=timeout))

    def clear_cache(self) -> None:
        self.cache.clear()
