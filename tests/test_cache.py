"""Tests for the recency cache."""

from __future__ import annotations

import threading

import pytest

from payfinder.index.cache import RecencyCache


class TestRecencyCache:
    """Tests for RecencyCache."""

    def test_get_missing_returns_default(self) -> None:
        cache = RecencyCache(max_size=2)
        assert cache.get("missing") is None
        assert cache.get("missing", []) == []

    def test_set_and_get(self) -> None:
        cache = RecencyCache(max_size=2)
        cache.set("rfc:ABCD", ["record"])

        assert cache.get("rfc:ABCD") == ["record"]
        assert "rfc:ABCD" in cache
        assert len(cache) == 1

    def test_overwrite_keeps_size(self) -> None:
        cache = RecencyCache(max_size=2)
        cache.set("a", 1)
        cache.set("a", 2)

        assert cache.get("a") == 2
        assert len(cache) == 1

    def test_evicts_least_recently_set(self) -> None:
        cache = RecencyCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert "a" not in cache
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_get_refreshes_access(self) -> None:
        cache = RecencyCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert "a" in cache
        assert "b" not in cache

    def test_evicted_entry_had_oldest_access(self) -> None:
        cache = RecencyCache(max_size=3)
        for key in "abc":
            cache.set(key, key)
        cache.get("a")
        cache.get("b")
        ticks = {key: cache.last_access(key) for key in "abc"}
        oldest = min(ticks, key=ticks.get)

        cache.set("d", "d")

        assert oldest == "c"
        assert oldest not in cache

    def test_size_never_exceeds_capacity(self) -> None:
        cache = RecencyCache(max_size=5)
        for i in range(50):
            cache.set(i, i)
            assert len(cache) <= 5

    def test_clear(self) -> None:
        cache = RecencyCache(max_size=2)
        cache.set("a", 1)
        cache.clear()

        assert len(cache) == 0
        assert cache.get("a") is None

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            RecencyCache(max_size=0)

    def test_concurrent_access(self) -> None:
        cache = RecencyCache(max_size=10)
        errors = []

        def worker(offset: int) -> None:
            try:
                for i in range(500):
                    cache.set((offset, i % 20), i)
                    cache.get((offset, (i + 1) % 20))
                    if i % 100 == 0:
                        cache.clear()
            except Exception as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(cache) <= 10
