"""Thread-safe in-memory storage of domain records."""

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Mapping, Sequence

from catchall.models import DomainInfo, DomainStatus, EventType
from catchall.repository import EventBatch


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDomainRepository:
    """Keeps domain records in a dictionary guarded by a lock."""

    def __init__(self) -> None:
        self._domains: dict[str, DomainInfo] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, domain_name: str, now: datetime) -> DomainInfo:
        info = self._domains.get(domain_name)
        if info is None:
            info = DomainInfo(name=domain_name, updated_at=now)
            self._domains[domain_name] = info
        return info

    @staticmethod
    def _add(info: DomainInfo, event_type: EventType, count: int, now: datetime) -> None:
        if event_type == EventType.DELIVERED:
            info.delivered_count += count
        elif event_type == EventType.BOUNCED:
            info.bounced_count += count
        info.updated_at = now

    def get_domain_info(self, domain_name: str) -> DomainInfo:
        """Return a copy of the stored record, or a default record for an unknown domain."""
        with self._lock:
            info = self._domains.get(domain_name)
            if info is None:
                return DomainInfo(name=domain_name, updated_at=_now())
            return replace(info)

    def increment_event_count(self, domain_name: str, event_type: EventType) -> None:
        """Add one event of the given type, creating the domain if needed."""
        with self._lock:
            now = _now()
            self._add(self._get_or_create(domain_name, now), event_type, 1, now)

    def update_domain_status(self, domain_name: str, status: DomainStatus) -> None:
        """Store a new status, creating the domain if needed."""
        with self._lock:
            now = _now()
            info = self._get_or_create(domain_name, now)
            info.status = status
            info.updated_at = now

    def get_domain_stats(self) -> dict[str, int]:
        """Count stored domains by status, with the overall total."""
        with self._lock:
            stats = {
                DomainStatus.CATCH_ALL.value: 0,
                DomainStatus.NOT_CATCH_ALL.value: 0,
                DomainStatus.UNKNOWN.value: 0,
                "total": len(self._domains),
            }
            for info in self._domains.values():
                if info.status in (
                    DomainStatus.CATCH_ALL,
                    DomainStatus.NOT_CATCH_ALL,
                    DomainStatus.UNKNOWN,
                ):
                    stats[DomainStatus(info.status).value] += 1
            return stats

    def increment_event_count_batch(self, events: Sequence[EventBatch]) -> None:
        """Apply every batch entry's count to its domain."""
        with self._lock:
            for event in events:
                now = _now()
                info = self._get_or_create(event.domain_name, now)
                self._add(info, event.event_type, event.count, now)

    def update_status_batch(self, updates: Mapping[str, DomainStatus]) -> None:
        """Store new statuses for several domains at one timestamp."""
        with self._lock:
            now = _now()
            for domain_name, status in updates.items():
                info = self._get_or_create(domain_name, now)
                info.status = status
                info.updated_at = now

    def get_domains_status_batch(self, domain_names: Sequence[str]) -> dict[str, DomainInfo]:
        """Return copies of the requested records, defaults for unknown domains."""
        with self._lock:
            now = _now()
            result: dict[str, DomainInfo] = {}
            for name in domain_names:
                info = self._domains.get(name)
                result[name] = (
                    DomainInfo(name=name, updated_at=now) if info is None else replace(info)
                )
            return result