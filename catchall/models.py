"""Domain model types shared by the repositories, services and API."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class DomainStatus(str, Enum):
    """Whether a domain is known to accept mail for any address."""

    UNKNOWN = "unknown"
    CATCH_ALL = "catch-all"
    NOT_CATCH_ALL = "not-catch-all"

    def __str__(self) -> str:
        return self.value


class EventType(str, Enum):
    """Kinds of delivery events recorded against a domain."""

    DELIVERED = "delivered"
    BOUNCED = "bounced"

    def __str__(self) -> str:
        return self.value


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DomainInfo:
    """Stored counters and status for one domain."""

    name: str
    delivered_count: int = 0
    bounced_count: int = 0
    status: DomainStatus = DomainStatus.UNKNOWN
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        """Return the JSON representation of this record."""
        return {
            "name": self.name,
            "delivered_count": self.delivered_count,
            "bounced_count": self.bounced_count,
            "status": DomainStatus(self.status).value,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class DomainStatusResponse:
    """API answer to a domain status query."""

    domain: str
    status: DomainStatus

    def to_dict(self) -> dict:
        """Return the JSON representation of this response."""
        return {"domain": self.domain, "status": DomainStatus(self.status).value}


@dataclass(frozen=True)
class ThresholdConfig:
    """Thresholds used to classify a domain."""

    delivered_threshold: int = 1000