import threading
import time
from collections import deque

import pytest

from catchall.batch_processor import BatchEventProcessor, aggregate_events
from catchall.domain_service import DomainService
from catchall.eventpool import Event
from catchall.memory_repository import InMemoryDomainRepository
from catchall.metrics import MetricsCollector
from catchall.models import EventType
from catchall.repository import EventBatch

FILLER = "filler.example.com"


class ScriptedPool:
    """Hands out scripted events, then an endless trickle of filler events."""

    def __init__(self, events):
        self._events = deque(events)
        self._lock = threading.Lock()
        self.recycled = []
        self.closed = False

    def get_event(self):
        with self._lock:
            if self._events:
                return self._events.popleft()
        time.sleep(0.005)
        return Event(type=EventType.DELIVERED, domain=FILLER)

    def recycle_event(self, event):
        with self._lock:
            self.recycled.append(event)

    def close(self):
        self.closed = True


class FailingBatchRepo:
    def __init__(self):
        self.calls = 0

    def increment_event_count_batch(self, events):
        self.calls += 1
        raise RuntimeError("storage unavailable")

    def update_status_batch(self, updates):
        raise RuntimeError("storage unavailable")

    def get_domains_status_batch(self, domain_names):
        raise RuntimeError("storage unavailable")


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _processor(repo, pool, metrics, **kwargs):
    return BatchEventProcessor(
        DomainService(InMemoryDomainRepository()),
        repo,
        metrics,
        pool_factory=lambda: pool,
        **kwargs,
    )


def test_aggregate_events_groups_by_domain_and_type():
    events = [
        Event(EventType.DELIVERED, "a.example.com"),
        Event(EventType.DELIVERED, "a.example.com"),
        Event(EventType.BOUNCED, "b.example.com"),
        Event(EventType.BOUNCED, "a.example.com"),
    ]
    batches = aggregate_events(events)
    assert batches == [
        EventBatch("a.example.com", EventType.DELIVERED, 2),
        EventBatch("b.example.com", EventType.BOUNCED, 1),
        EventBatch("a.example.com", EventType.BOUNCED, 1),
    ]
    assert sum(b.count for b in batches) == len(events)


def test_aggregate_events_counts_unknown_types_as_bounces():
    batches = aggregate_events([Event(type="weird", domain="x.example.com")])
    assert [b.event_type for b in batches] == [EventType.BOUNCED]


def test_aggregate_events_empty():
    assert aggregate_events([]) == []


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        _processor(InMemoryDomainRepository(), ScriptedPool([]), MetricsCollector(), batch_size=0)


def test_processor_stores_counts_and_recycles_events():
    scripted = (
        [Event(EventType.DELIVERED, "a.example.com") for _ in range(5)]
        + [Event(EventType.BOUNCED, "a.example.com") for _ in range(2)]
        + [Event(EventType.DELIVERED, "b.example.com") for _ in range(3)]
    )
    pool = ScriptedPool(list(scripted))
    repo = InMemoryDomainRepository()
    metrics = MetricsCollector()
    processor = _processor(repo, pool, metrics, worker_count=2, flush_interval=0.02)
    processor.start()

    def done():
        a = repo.get_domain_info("a.example.com")
        b = repo.get_domain_info("b.example.com")
        return (a.delivered_count, a.bounced_count, b.delivered_count) == (5, 2, 3)

    reached = _wait_for(done)
    processor.stop()

    assert reached
    assert pool.closed
    recycled_ids = {id(e) for e in pool.recycled}
    assert all(id(e) in recycled_ids for e in scripted)
    snapshot = metrics.snapshot()
    assert snapshot["bounced_event_count"] >= 2
    assert snapshot["delivered_event_count"] >= 8
    assert snapshot["batch_metrics"]["batch_count"] >= 1


def test_processor_flushes_when_enough_domains_are_pending():
    scripted = [
        Event(EventType.DELIVERED, "a.example.com"),
        Event(EventType.BOUNCED, "b.example.com"),
    ]
    pool = ScriptedPool(scripted)
    repo = InMemoryDomainRepository()
    processor = _processor(
        repo, pool, MetricsCollector(), worker_count=1, batch_size=2, flush_interval=60
    )
    processor.start()

    reached = _wait_for(
        lambda: repo.get_domain_info("a.example.com").delivered_count == 1
        and repo.get_domain_info("b.example.com").bounced_count == 1,
        timeout=3.0,
    )
    processor.stop()
    assert reached


def test_processor_keeps_going_after_batch_errors():
    pool = ScriptedPool([Event(EventType.DELIVERED, "a.example.com")])
    repo = FailingBatchRepo()
    metrics = MetricsCollector()
    processor = _processor(repo, pool, metrics, flush_interval=0.01)
    processor.start()

    reached = _wait_for(lambda: repo.calls >= 2)
    processor.stop()

    assert reached
    assert metrics.snapshot()["batch_metrics"]["batch_count"] >= 2
    assert pool.closed