"""Storage interfaces for domain records and the types shared by their implementations."""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Mapping, Optional, Protocol, Sequence, runtime_checkable

from catchall.models import DomainInfo, DomainStatus, EventType


@runtime_checkable
class DomainRepository(Protocol):
    """Storage for per-domain event counters and status."""

    def get_domain_info(self, domain_name: str) -> DomainInfo:
        """Return the stored record, or a fresh default one if the domain is unknown."""

    def increment_event_count(self, domain_name: str, event_type: EventType) -> None:
        """Add one event of the given type to the domain's counters."""

    def update_domain_status(self, domain_name: str, status: DomainStatus) -> None:
        """Store a new status for the domain."""


@runtime_checkable
class BatchDomainRepository(Protocol):
    """Storage that can apply many changes in one operation."""

    def increment_event_count_batch(self, events: Sequence["EventBatch"]) -> None:
        """Add the counts of every batch entry to the matching domains."""

    def update_status_batch(self, updates: Mapping[str, DomainStatus]) -> None:
        """Store new statuses for several domains."""

    def get_domains_status_batch(self, domain_names: Sequence[str]) -> dict[str, DomainInfo]:
        """Return a record for every requested domain."""


@dataclass(frozen=True)
class EventBatch:
    """A number of events of one type for one domain."""

    domain_name: str
    event_type: EventType
    count: int


class RepositoryType(str, Enum):
    """Available storage back ends."""

    MEMORY = "memory"
    MONGODB = "mongodb"

    def __str__(self) -> str:
        return self.value


@dataclass
class RepositoryOptions:
    """Options used when building a repository."""

    enable_caching: bool = True
    cache_ttl: timedelta = field(default_factory=lambda: timedelta(minutes=5))


def default_repository_options() -> RepositoryOptions:
    """Return the default options: caching on with a five minute TTL."""
    return RepositoryOptions()


def as_batch_repository(repo: object) -> Optional[BatchDomainRepository]:
    """Return the repository if it supports batch operations, otherwise None."""
    if isinstance(repo, BatchDomainRepository):
        return repo
    return None