"""In-process collection of request, event and batch metrics."""

import json
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Union

Duration = Union[float, int, timedelta]

_MAX_SAMPLES = 10_000
_TRIM = 1_000


def _seconds(duration: Duration) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


def calculate_average(durations: Iterable[float]) -> float:
    """Average of durations given in seconds, in milliseconds; 0 when empty."""
    values = list(durations)
    if not values:
        return 0.0
    return sum(values) / len(values) * 1000.0


def calculate_p95(durations: Iterable[float]) -> float:
    """95th percentile of durations given in seconds, in milliseconds; 0 when empty."""
    ordered = sorted(durations)
    if not ordered:
        return 0.0
    index = min(int(len(ordered) * 0.95), len(ordered) - 1)
    return ordered[index] * 1000.0


def _fraction(value: int, unit: int, digits: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    return f"{whole}.{str(frac).zfill(digits).rstrip('0')}"


def _format_duration(nanoseconds: int) -> str:
    """Render a duration the way uptime is reported, e.g. '1h2m3.5s'."""
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    ns = abs(nanoseconds)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_fraction(ns, 1_000, 3)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_fraction(ns, 1_000_000, 6)}ms"
    hours, rest = divmod(ns, 3600 * 10**9)
    minutes, rest = divmod(rest, 60 * 10**9)
    seconds = _fraction(rest, 10**9, 9) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return sign + seconds


@dataclass(frozen=True)
class BatchProcessingTime:
    """Duration in seconds and size of one processed batch."""

    duration: float
    size: int


class MetricsCollector:
    """Thread-safe collector of counters and timing samples."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._request_count = 0
        self._event_count = 0
        self._delivered_event_count = 0
        self._bounced_event_count = 0
        self._response_times: dict[str, list[float]] = defaultdict(list)
        self._response_times_by_code: dict[int, list[float]] = defaultdict(list)
        self._event_processing_times: list[float] = []
        self._batch_processing_times: list[BatchProcessingTime] = []
        self._start_ns = time.monotonic_ns()

    def increment_request_count(self) -> None:
        with self._lock:
            self._request_count += 1

    def increment_event_count(self, event_type: str) -> None:
        """Count an event; 'delivered' and 'bounced' are also counted separately."""
        with self._lock:
            self._event_count += 1
            if event_type == "delivered":
                self._delivered_event_count += 1
            elif event_type == "bounced":
                self._bounced_event_count += 1

    def record_response_time(self, path: str, status_code: int, method: str) -> None:
        """Record a response sample keyed by method and path, and by status code.

        The sample is the time elapsed since the collector was created.
        """
        elapsed = (time.monotonic_ns() - self._start_ns) / 1e9
        key = f"{method} {path}"
        with self._lock:
            self._response_times[key].append(elapsed)
            self._response_times_by_code[status_code].append(elapsed)

    def record_event_processing_time(self, duration: Duration) -> None:
        with self._lock:
            self._event_processing_times.append(_seconds(duration))
            if len(self._event_processing_times) > _MAX_SAMPLES:
                del self._event_processing_times[:_TRIM]

    def record_batch_processing_time(self, duration: Duration, batch_size: int) -> None:
        with self._lock:
            self._batch_processing_times.append(
                BatchProcessingTime(duration=_seconds(duration), size=batch_size)
            )
            if len(self._batch_processing_times) > _MAX_SAMPLES:
                del self._batch_processing_times[:_TRIM]

    def _batch_metrics(self) -> dict:
        batches = self._batch_processing_times
        metrics = {
            "batch_count": 0,
            "total_events": 0,
            "average_batch_size": 0.0,
            "average_batch_time_ms": 0.0,
            "events_per_second": 0.0,
            "p95_batch_process_time_ms": 0.0,
        }
        if not batches:
            return metrics
        count = len(batches)
        total_events = sum(b.size for b in batches)
        total_time = sum(b.duration for b in batches)
        metrics.update(
            batch_count=count,
            total_events=total_events,
            average_batch_size=total_events / count,
            average_batch_time_ms=total_time / count * 1000.0,
            events_per_second=total_events / total_time if total_time > 0 else 0.0,
            p95_batch_process_time_ms=calculate_p95(b.duration for b in batches),
        )
        return metrics

    def snapshot(self) -> dict:
        """Return the current metrics as a JSON-ready dictionary."""
        with self._lock:
            all_responses = [t for times in self._response_times.values() for t in times]
            return {
                "uptime": _format_duration(time.monotonic_ns() - self._start_ns),
                "request_count": self._request_count,
                "event_count": self._event_count,
                "delivered_event_count": self._delivered_event_count,
                "bounced_event_count": self._bounced_event_count,
                "average_response_ms": calculate_average(all_responses),
                "average_event_process_ms": calculate_average(self._event_processing_times),
                "batch_metrics": self._batch_metrics(),
                "status_code_counts": {
                    code: len(times)
                    for code, times in sorted(
                        self._response_times_by_code.items(), key=lambda kv: str(kv[0])
                    )
                },
                "p95_response_time_ms": calculate_p95(all_responses),
                "p95_event_process_time_ms": calculate_p95(self._event_processing_times),
                "endpoint_statistics": {
                    key: {
                        "count": len(times),
                        "average_response_ms": calculate_average(times),
                        "p95_response_time_ms": calculate_p95(times),
                    }
                    for key, times in sorted(self._response_times.items())
                },
            }

    def to_json(self) -> str:
        """Return the current metrics encoded as a JSON document with a trailing newline."""
        return json.dumps(self.snapshot(), ensure_ascii=False) + "\n"