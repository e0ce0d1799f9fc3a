from __future__ import annotations

import threading
from typing import Any

from pagelift.cache.metadata_cache import (
    FACT_AVAILABLE_CONTROLS,
    FACT_PUBLISHING_LIBRARY,
    FACT_SITE_URL,
    MetadataCache,
)


class _CountingSource:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def ensure_site_fact(self, site_id: str, kind: str) -> Any:
        with self._lock:
            self.calls.append((site_id, kind))
        if kind == FACT_AVAILABLE_CONTROLS:
            return ["Text", "Image"]
        if kind == FACT_PUBLISHING_LIBRARY:
            return "Pages"
        return f"/sites/{site_id}"


def test_facts_are_fetched_once_and_served_from_cache() -> None:
    source = _CountingSource()
    cache = MetadataCache()

    first = cache.available_controls(source, "a")  # type: ignore[arg-type]
    second = cache.available_controls(source, "a")  # type: ignore[arg-type]

    assert first == frozenset({"Text", "Image"})
    assert second is first
    assert source.calls == [("a", FACT_AVAILABLE_CONTROLS)]


def test_facts_are_keyed_by_site_and_kind() -> None:
    source = _CountingSource()
    cache = MetadataCache()

    assert cache.site_url(source, "a") == "/sites/a"  # type: ignore[arg-type]
    assert cache.site_url(source, "b") == "/sites/b"  # type: ignore[arg-type]
    assert cache.publishing_library(source, "a") == "Pages"  # type: ignore[arg-type]

    assert len(cache) == 3
    assert cache.peek("a", FACT_SITE_URL) == "/sites/a"
    assert cache.peek("c", FACT_SITE_URL) is None


def test_clear_all_forces_exactly_one_refetch() -> None:
    source = _CountingSource()
    cache = MetadataCache()
    cache.site_url(source, "a")  # type: ignore[arg-type]

    cache.clear_all()
    cache.site_url(source, "a")  # type: ignore[arg-type]
    cache.site_url(source, "a")  # type: ignore[arg-type]

    assert source.calls == [("a", FACT_SITE_URL), ("a", FACT_SITE_URL)]
    assert len(cache) == 1


def test_concurrent_readers_converge_on_one_value() -> None:
    source = _CountingSource()
    cache = MetadataCache()
    results: list[frozenset[str]] = []
    barrier = threading.Barrier(8)

    def _read() -> None:
        barrier.wait()
        results.append(cache.available_controls(source, "a"))  # type: ignore[arg-type]

    threads = [threading.Thread(target=_read) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 8
    assert all(result is results[0] for result in results)
    assert cache.peek("a", FACT_AVAILABLE_CONTROLS) is results[0]
