"""Unit tests for snapshot assembly."""

from datetime import datetime

from src.hostwatch.monitoring.assembler import assemble_snapshot, format_percent
from src.hostwatch.monitoring.cache import MetricCache
from src.hostwatch.monitoring.models import (
    DiskSample,
    MetricFamily,
    SystemSample,
    TaskSample,
    UrlSample,
)

FIXED_NOW = datetime(2024, 3, 5, 8, 7, 6)


def test_format_percent():
    assert format_percent(0) == "0.00%"
    assert format_percent(3.14159) == "3.14%"
    assert format_percent(100) == "100.00%"


def test_empty_cache_gives_zeroed_snapshot():
    snapshot = assemble_snapshot("10.0.0.5", MetricCache(), now=lambda: FIXED_NOW)
    assert snapshot.host_identity == "10.0.0.5"
    assert snapshot.timestamp == "2024-03-05 08:07:06"
    assert snapshot.cpu_usage == "0.00%"
    assert snapshot.memory_usage == "0.00%"
    assert snapshot.disk_usage == ()
    assert snapshot.url_status == ()
    assert snapshot.task_logs == ()


def test_copies_every_family_in_order():
    cache = MetricCache()
    cache.update(
        MetricFamily.DISK,
        SystemSample(cpu_percent=12.5, memory_percent=40.0, disks=(DiskSample("/", 55.1), DiskSample("/data", 3.0))),
    )
    cache.update(
        MetricFamily.URL,
        (
            UrlSample("https://a", 200, "Success"),
            UrlSample("https://b", 0, "Timed out after 10s"),
        ),
    )
    cache.update(MetricFamily.TASK, (TaskSample("Backup", "Ready [last result: 0]", "Ready"),))

    snapshot = assemble_snapshot("host", cache, now=lambda: FIXED_NOW)

    assert snapshot.cpu_usage == "12.50%"
    assert snapshot.memory_usage == "40.00%"
    assert [(d.drive, d.usage) for d in snapshot.disk_usage] == [("/", "55.10%"), ("/data", "3.00%")]
    assert [(u.url, u.status, u.message) for u in snapshot.url_status] == [
        ("https://a", 200, "Success"),
        ("https://b", 0, "Timed out after 10s"),
    ]
    assert [(t.name, t.status, t.raw_state) for t in snapshot.task_logs] == [
        ("Backup", "Ready [last result: 0]", "Ready")
    ]


def test_snapshot_not_affected_by_later_cache_updates():
    cache = MetricCache()
    cache.update(MetricFamily.URL, (UrlSample("https://a", 200, "Success"),))
    snapshot = assemble_snapshot("host", cache, now=lambda: FIXED_NOW)

    cache.update(MetricFamily.URL, (UrlSample("https://a", 503, "Success"),))
    assert snapshot.url_status[0].status == 200
