"""Aggregate statistics about stored domains."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from catchall.models import DomainStatus
from catchall.repository import DomainRepository

_log = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainStats:
    """Number of domains in each status, with the total and when it was taken."""

    catch_all: int = 0
    not_catch_all: int = 0
    unknown: int = 0
    total: int = 0
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        """Return the JSON representation of these statistics."""
        return {
            "catch_all": self.catch_all,
            "not_catch_all": self.not_catch_all,
            "unknown": self.unknown,
            "total": self.total,
            "timestamp": self.timestamp.isoformat(),
        }


class StatsService:
    """Reports domain statistics from repositories that can count them."""

    def __init__(self, repo: DomainRepository, logger: Optional[logging.Logger] = None) -> None:
        self._repo = repo
        self._logger = logger or _log

    def get_domain_stats(self) -> DomainStats:
        """Return counts by status; all zeros when the repository cannot count."""
        counter = getattr(self._repo, "get_domain_stats", None)
        if not callable(counter):
            self._logger.info(
                "Repository does not implement get_domain_stats, using default implementation"
            )
            return DomainStats()

        try:
            stats = counter()
        except Exception as exc:
            self._logger.error("Error getting domain stats: %s", exc)
            raise

        return DomainStats(
            catch_all=stats.get(DomainStatus.CATCH_ALL.value, 0),
            not_catch_all=stats.get(DomainStatus.NOT_CATCH_ALL.value, 0),
            unknown=stats.get(DomainStatus.UNKNOWN.value, 0),
            total=stats.get("total", 0),
        )