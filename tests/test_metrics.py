import json
import random
import re
import threading
from datetime import timedelta

import pytest

from catchall.metrics import (
    BatchProcessingTime,
    MetricsCollector,
    _format_duration,
    calculate_average,
    calculate_p95,
)


def test_empty_inputs_give_zero():
    assert calculate_average([]) == 0.0
    assert calculate_p95([]) == 0.0


def test_single_value_average_and_p95_in_milliseconds():
    assert calculate_average([0.25]) == pytest.approx(250.0)
    assert calculate_p95([0.25]) == pytest.approx(250.0)


def test_p95_is_order_independent_and_a_sample():
    samples = [i / 1000 for i in range(1, 101)]
    shuffled = samples[:]
    random.Random(7).shuffle(shuffled)
    p95 = calculate_p95(shuffled)
    assert p95 == calculate_p95(samples)
    assert any(p95 == pytest.approx(s * 1000) for s in samples)
    assert calculate_average(samples) <= p95 <= max(samples) * 1000


def test_counters():
    m = MetricsCollector()
    m.increment_request_count()
    m.increment_request_count()
    m.increment_event_count("delivered")
    m.increment_event_count("bounced")
    m.increment_event_count("other")
    snap = m.snapshot()
    assert snap["request_count"] == 2
    assert snap["event_count"] == 3
    assert snap["delivered_event_count"] == 1
    assert snap["bounced_event_count"] == 1


def test_response_times_grouped_by_endpoint_and_code():
    m = MetricsCollector()
    m.record_response_time("/healthz", 200, "GET")
    m.record_response_time("/healthz", 200, "GET")
    m.record_response_time("/domains/x", 500, "GET")
    snap = m.snapshot()
    assert snap["status_code_counts"] == {200: 2, 500: 1}
    assert snap["endpoint_statistics"]["GET /healthz"]["count"] == 2
    assert snap["endpoint_statistics"]["GET /domains/x"]["count"] == 1
    assert snap["average_response_ms"] >= 0.0
    assert snap["p95_response_time_ms"] >= snap["endpoint_statistics"]["GET /healthz"]["p95_response_time_ms"]


def test_event_processing_time_accepts_timedelta():
    m = MetricsCollector()
    for _ in range(3):
        m.record_event_processing_time(timedelta(milliseconds=5))
    snap = m.snapshot()
    assert snap["average_event_process_ms"] == pytest.approx(5.0)
    assert snap["p95_event_process_time_ms"] == pytest.approx(5.0)


def test_event_samples_are_trimmed_oldest_first():
    m = MetricsCollector()
    for _ in range(1000):
        m.record_event_processing_time(1.0)
    assert m.snapshot()["average_event_process_ms"] > 0
    for _ in range(9001):
        m.record_event_processing_time(0.0)
    assert m.snapshot()["average_event_process_ms"] == 0.0


def test_batch_metrics_single_batch():
    m = MetricsCollector()
    m.record_batch_processing_time(0.5, 10)
    batch = m.snapshot()["batch_metrics"]
    assert batch["batch_count"] == 1
    assert batch["total_events"] == 10
    assert batch["average_batch_size"] == pytest.approx(10.0)
    assert batch["average_batch_time_ms"] == pytest.approx(500.0)
    assert batch["p95_batch_process_time_ms"] == pytest.approx(500.0)
    assert batch["events_per_second"] == pytest.approx(20.0)


def test_batch_samples_are_trimmed_oldest_first():
    m = MetricsCollector()
    for _ in range(1000):
        m.record_batch_processing_time(0.001, 5)
    for _ in range(9001):
        m.record_batch_processing_time(0.001, 1)
    batch = m.snapshot()["batch_metrics"]
    assert batch["total_events"] == batch["batch_count"]
    assert batch["average_batch_size"] == pytest.approx(1.0)


def test_empty_batch_metrics_are_zero():
    batch = MetricsCollector().snapshot()["batch_metrics"]
    assert batch["batch_count"] == 0
    assert batch["events_per_second"] == 0.0


def test_to_json_round_trip():
    m = MetricsCollector()
    m.record_response_time("/metrics", 200, "GET")
    text = m.to_json()
    assert text.endswith("\n")
    decoded = json.loads(text)
    assert decoded["status_code_counts"] == {"200": 1}
    assert decoded["endpoint_statistics"]["GET /metrics"]["count"] == 1
    assert re.fullmatch(r"[0-9.]+(ns|µs|ms|s)|.*\d+(\.\d+)?s", decoded["uptime"])


def test_format_duration():
    assert _format_duration(0) == "0s"
    assert _format_duration(90 * 10**9) == "1m30s"
    assert _format_duration(3600 * 10**9).startswith("1h")


def test_batch_processing_time_record():
    record = BatchProcessingTime(duration=0.25, size=4)
    assert calculate_average([record.duration]) == pytest.approx(250.0)


def test_concurrent_increments_are_not_lost():
    m = MetricsCollector()
    threads_n, per_thread = 8, 500

    def work():
        for _ in range(per_thread):
            m.increment_request_count()
            m.increment_event_count("delivered")

    threads = [threading.Thread(target=work) for _ in range(threads_n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    snap = m.snapshot()
    assert snap["request_count"] == threads_n * per_thread
    assert snap["delivered_event_count"] == snap["event_count"] == threads_n * per_thread