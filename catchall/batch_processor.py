"""Workers that pull simulated events from the pool and store their counts in batches."""

import logging
import queue
import threading
import time
from typing import Callable, Iterable, Optional

from catchall.domain_service import DomainService
from catchall.eventpool import Event, EventPool, spawn_event_pool
from catchall.metrics import MetricsCollector
from catchall.models import EventType
from catchall.repository import BatchDomainRepository, EventBatch

_log = logging.getLogger(__name__)

_DEFAULT_BATCH_SIZE = 100
_DEFAULT_FLUSH_INTERVAL = 0.1
_POLL = 0.05


def _event_type(event: Event) -> EventType:
    """Delivered events stay delivered; every other type counts as a bounce."""
    return EventType.DELIVERED if event.type == EventType.DELIVERED else EventType.BOUNCED


def aggregate_events(events: Iterable[Event]) -> list[EventBatch]:
    """Group events by domain and type into batch entries, in first-seen order."""
    counts: dict[tuple[str, EventType], int] = {}
    for event in events:
        key = (event.domain, _event_type(event))
        counts[key] = counts.get(key, 0) + 1
    return [
        EventBatch(domain_name=domain, event_type=event_type, count=count)
        for (domain, event_type), count in counts.items()
    ]


class BatchEventProcessor:
    """Collects pool events and writes their counts to a batch repository.

    A collector thread feeds a bounded queue; each worker accumulates events
    and flushes them once enough distinct domains are pending or the flush
    interval has passed.
    """

    def __init__(
        self,
        domain_service: DomainService,
        batch_repo: BatchDomainRepository,
        metrics_collector: MetricsCollector,
        logger: Optional[logging.Logger] = None,
        worker_count: int = 1,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        flush_interval: float = _DEFAULT_FLUSH_INTERVAL,
        pool_factory: Callable[[], EventPool] = spawn_event_pool,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._domain_service = domain_service
        self._batch_repo = batch_repo
        self._metrics = metrics_collector
        self._logger = logger or _log
        self._worker_count = worker_count
        self._batch_size = batch_size
        self._flush_interval = float(flush_interval)
        self._pool_factory = pool_factory
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._pool: Optional[EventPool] = None

    def start(self) -> None:
        """Open the event pool and start the collector and the workers."""
        self._logger.info("Starting batch event processor...")
        pool = self._pool_factory()
        self._pool = pool
        channel: "queue.Queue[Event]" = queue.Queue(
            maxsize=self._batch_size * self._worker_count
        )
        for worker_id in range(self._worker_count):
            self._spawn(self._worker, (worker_id, channel, pool), f"batch-worker-{worker_id}")
        self._spawn(self._collect, (channel, pool), "batch-collector")
        self._logger.info(
            "Batch event processor started with %d workers and batch size %d",
            self._worker_count,
            self._batch_size,
        )

    def stop(self) -> None:
        """Signal all threads, wait for them to flush and finish, then close the pool."""
        self._logger.info("Stopping batch event processor...")
        self._stop.set()
        for thread in self._threads:
            thread.join()
        self._threads.clear()
        if self._pool is not None:
            self._pool.close()
            self._pool = None
        self._logger.info("Batch event processor stopped")

    def _spawn(self, target: Callable[..., None], args: tuple, name: str) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def _collect(self, channel: "queue.Queue[Event]", pool: EventPool) -> None:
        while not self._stop.is_set():
            event = pool.get_event()
            while True:
                try:
                    channel.put(event, timeout=_POLL)
                    break
                except queue.Full:
                    if self._stop.is_set():
                        pool.recycle_event(event)
                        self._logger.info("Event collector stopped while sending")
                        return
        self._logger.info("Event collector stopped")

    def _worker(self, worker_id: int, channel: "queue.Queue[Event]", pool: EventPool) -> None:
        self._logger.info("Batch worker %d started", worker_id)
        pending: list[Event] = []
        domains: set[str] = set()

        def flush() -> None:
            if not pending:
                return
            start = time.perf_counter()
            batch = aggregate_events(pending)
            try:
                self._batch_repo.increment_event_count_batch(batch)
            except Exception as exc:
                self._logger.error("Worker %d error processing batch: %s", worker_id, exc)
            self._metrics.record_batch_processing_time(time.perf_counter() - start, len(batch))
            for event in pending:
                pool.recycle_event(event)
            pending.clear()
            domains.clear()

        deadline = time.monotonic() + self._flush_interval
        while not self._stop.is_set():
            now = time.monotonic()
            if now >= deadline:
                flush()
                deadline = now + self._flush_interval
                continue
            try:
                event = channel.get(timeout=min(deadline - now, _POLL))
            except queue.Empty:
                continue

            self._metrics.increment_event_count(_event_type(event).value)
            pending.append(event)
            domains.add(event.domain)

            if len(domains) >= self._batch_size:
                flush()
                deadline = time.monotonic() + self._flush_interval

        flush()
        self._logger.info("Batch worker %d stopped", worker_id)