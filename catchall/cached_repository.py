"""A caching layer in front of another domain repository."""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional, Sequence, Union

from catchall.models import DomainInfo, DomainStatus, EventType
from catchall.repository import DomainRepository, EventBatch, as_batch_repository

_DEFAULT_CLEANUP_INTERVAL = 300.0


def _seconds(value: Union[float, int, timedelta]) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


@dataclass(frozen=True)
class CacheStats:
    """Counts of cache hits and misses."""

    hits: int = 0
    misses: int = 0


@dataclass(frozen=True)
class _CachedItem:
    info: DomainInfo
    expires_at: float


class CachedDomainRepository:
    """Caches domain records read from a wrapped repository.

    Writes go to the wrapped repository and drop the cached entry for the
    affected domains. A background thread removes expired entries until the
    repository is closed.
    """

    def __init__(
        self,
        repo: DomainRepository,
        ttl: Union[float, int, timedelta],
        logger: Optional[logging.Logger] = None,
        cleanup_interval: Union[float, int, timedelta] = _DEFAULT_CLEANUP_INTERVAL,
    ) -> None:
        self._repo = repo
        self._ttl = _seconds(ttl)
        self._cleanup_interval = _seconds(cleanup_interval)
        self._logger = logger
        self._cache: dict[str, _CachedItem] = {}
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stop = threading.Event()
        self._cleaner = threading.Thread(
            target=self._run_cleanup, name="cache-cleanup", daemon=True
        )
        self._cleaner.start()

    def __enter__(self) -> "CachedDomainRepository":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def _hit(self) -> None:
        with self._stats_lock:
            self._hits += 1

    def _miss(self) -> None:
        with self._stats_lock:
            self._misses += 1

    def _store(self, name: str, info: DomainInfo, now: float) -> None:
        with self._lock:
            self._cache[name] = _CachedItem(info=info, expires_at=now + self._ttl)

    def _invalidate(self, names) -> None:
        with self._lock:
            for name in names:
                self._cache.pop(name, None)

    def get_domain_info(self, domain_name: str) -> DomainInfo:
        """Return the domain record, from the cache when a fresh entry exists."""
        with self._lock:
            item = self._cache.get(domain_name)
        if item is not None and time.monotonic() < item.expires_at:
            self._hit()
            return item.info

        self._miss()
        info = self._repo.get_domain_info(domain_name)
        self._store(domain_name, info, time.monotonic())
        return info

    def increment_event_count(self, domain_name: str, event_type: EventType) -> None:
        """Increment the count in the wrapped repository and drop the cached entry."""
        self._repo.increment_event_count(domain_name, event_type)
        self._invalidate([domain_name])

    def update_domain_status(self, domain_name: str, status: DomainStatus) -> None:
        """Update the status in the wrapped repository and drop the cached entry."""
        self._repo.update_domain_status(domain_name, status)
        self._invalidate([domain_name])

    def cache_stats(self) -> CacheStats:
        """Return the current hit and miss counts."""
        with self._stats_lock:
            return CacheStats(hits=self._hits, misses=self._misses)

    def cleanup(self) -> int:
        """Remove expired entries and return how many were removed."""
        now = time.monotonic()
        with self._lock:
            expired = [name for name, item in self._cache.items() if now > item.expires_at]
            for name in expired:
                del self._cache[name]
        if expired and self._logger is not None:
            self._logger.info("Cache cleanup: removed %d expired items", len(expired))
        return len(expired)

    def close(self) -> None:
        """Stop the background cleanup thread."""
        self._stop.set()
        if self._cleaner is not threading.current_thread():
            self._cleaner.join()

    def _run_cleanup(self) -> None:
        while not self._stop.wait(self._cleanup_interval):
            self.cleanup()

    def increment_event_count_batch(self, events: Sequence[EventBatch]) -> None:
        """Apply batched counts, one by one when the wrapped repository has no batch support."""
        batch_repo = as_batch_repository(self._repo)
        if batch_repo is not None:
            batch_repo.increment_event_count_batch(events)
            self._invalidate(event.domain_name for event in events)
            return

        for event in events:
            for _ in range(event.count):
                self.increment_event_count(event.domain_name, event.event_type)

    def update_status_batch(self, updates: Mapping[str, DomainStatus]) -> None:
        """Store several statuses, one by one when the wrapped repository has no batch support."""
        batch_repo = as_batch_repository(self._repo)
        if batch_repo is not None:
            batch_repo.update_status_batch(updates)
            self._invalidate(list(updates))
            return

        for domain_name, status in updates.items():
            self.update_domain_status(domain_name, status)

    def get_domains_status_batch(self, domain_names: Sequence[str]) -> dict[str, DomainInfo]:
        """Return records for the given domains, fetching only those not freshly cached."""
        result: dict[str, DomainInfo] = {}
        to_fetch: list[str] = []
        now = time.monotonic()

        with self._lock:
            items = {name: self._cache.get(name) for name in domain_names}
        for name in domain_names:
            item = items[name]
            if item is not None and now < item.expires_at:
                self._hit()
                result[name] = item.info
            else:
                self._miss()
                to_fetch.append(name)

        if not to_fetch:
            return result

        batch_repo = as_batch_repository(self._repo)
        if batch_repo is not None:
            fetched = batch_repo.get_domains_status_batch(to_fetch)
            for name, info in fetched.items():
                result[name] = info
                self._store(name, info, now)
            return result

        for name in to_fetch:
            info = self._repo.get_domain_info(name)
            result[name] = info
            self._store(name, info, now)
        return result