"""Business rules that classify domains from their delivery events."""

import logging
from typing import Optional

from catchall.models import (
    DomainInfo,
    DomainStatus,
    DomainStatusResponse,
    EventType,
    ThresholdConfig,
)
from catchall.repository import DomainRepository

_log = logging.getLogger(__name__)


class DomainService:
    """Records events for domains and works out whether they are catch-all."""

    def __init__(
        self,
        repo: DomainRepository,
        logger: Optional[logging.Logger] = None,
        threshold_config: Optional[ThresholdConfig] = None,
    ) -> None:
        self._repo = repo
        self._logger = logger or _log
        self._thresholds = threshold_config or ThresholdConfig()

    def get_domain_status(self, domain_name: str) -> DomainStatusResponse:
        """Return the domain's current status, storing it if it has changed.

        A failure to store the new status is logged and the status is still returned.
        """
        try:
            info = self._repo.get_domain_info(domain_name)
        except Exception as exc:
            self._logger.error("Error getting domain info for %s: %s", domain_name, exc)
            raise

        status = self.determine_domain_status(info)
        if status != info.status:
            try:
                self._repo.update_domain_status(domain_name, status)
            except Exception as exc:
                self._logger.error(
                    "Error updating domain status for %s: %s", domain_name, exc
                )

        return DomainStatusResponse(domain=domain_name, status=status)

    def record_event(self, domain_name: str, event_type: EventType) -> None:
        """Count an event for the domain and store its resulting status if it changed."""
        try:
            self._repo.increment_event_count(domain_name, event_type)
        except Exception as exc:
            self._logger.error("Error incrementing event count for %s: %s", domain_name, exc)
            raise

        try:
            info = self._repo.get_domain_info(domain_name)
        except Exception as exc:
            self._logger.error(
                "Error getting domain info after event for %s: %s", domain_name, exc
            )
            raise

        status = self.determine_domain_status(info)
        if status != info.status:
            try:
                self._repo.update_domain_status(domain_name, status)
            except Exception as exc:
                self._logger.error(
                    "Error updating domain status after event for %s: %s", domain_name, exc
                )
                raise

    def determine_domain_status(self, info: DomainInfo) -> DomainStatus:
        """Classify a domain: any bounce means not catch-all, enough deliveries mean catch-all."""
        if info.bounced_count > 0:
            return DomainStatus.NOT_CATCH_ALL
        if info.delivered_count >= self._thresholds.delivered_threshold:
            return DomainStatus.CATCH_ALL
        return DomainStatus.UNKNOWN