"""Workers that pull simulated events from the pool and record them one by one."""

import logging
import threading
import time
from typing import Callable, Optional, Protocol, runtime_checkable

from catchall.domain_service import DomainService
from catchall.eventpool import Event, EventPool, spawn_event_pool
from catchall.metrics import MetricsCollector
from catchall.models import EventType

_log = logging.getLogger(__name__)


@runtime_checkable
class Processor(Protocol):
    """Something that processes events in the background."""

    def start(self) -> None:
        """Begin processing events."""

    def stop(self) -> None:
        """Halt processing and wait for it to finish."""


class EventProcessor:
    """Runs worker threads that record each pool event through the domain service."""

    def __init__(
        self,
        domain_service: DomainService,
        metrics_collector: MetricsCollector,
        logger: Optional[logging.Logger] = None,
        worker_count: int = 1,
        pool_factory: Callable[[], EventPool] = spawn_event_pool,
    ) -> None:
        self._domain_service = domain_service
        self._metrics = metrics_collector
        self._logger = logger or _log
        self._worker_count = worker_count
        self._pool_factory = pool_factory
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._pool: Optional[EventPool] = None

    def start(self) -> None:
        """Open the event pool and start the workers."""
        self._logger.info("Starting event processor...")
        self._pool = self._pool_factory()
        for worker_id in range(self._worker_count):
            thread = threading.Thread(
                target=self._worker,
                args=(worker_id, self._pool),
                name=f"event-worker-{worker_id}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
        self._logger.info("Event processor started with %d workers", self._worker_count)

    def stop(self) -> None:
        """Signal the workers, wait for them and close the pool."""
        self._logger.info("Stopping event processor...")
        self._stop.set()
        for thread in self._threads:
            thread.join()
        self._threads.clear()
        if self._pool is not None:
            self._pool.close()
            self._pool = None
        self._logger.info("Event processor stopped")

    def _worker(self, worker_id: int, pool: EventPool) -> None:
        self._logger.info("Worker %d started", worker_id)
        while not self._stop.is_set():
            event = pool.get_event()
            self.process_event(event)
            pool.recycle_event(event)
        self._logger.info("Worker %d stopped", worker_id)

    def process_event(self, event: Event) -> None:
        """Record one event; unknown types are logged and skipped, errors are logged."""
        start = time.perf_counter()
        try:
            event_type = EventType(event.type)
        except ValueError:
            self._logger.warning("Unknown event type: %s", event.type)
            return

        self._metrics.increment_event_count(event_type.value)
        try:
            self._domain_service.record_event(event.domain, event_type)
        except Exception as exc:
            self._logger.error("Error recording event for domain %s: %s", event.domain, exc)

        self._metrics.record_event_processing_time(time.perf_counter() - start)