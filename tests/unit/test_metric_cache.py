"""Unit tests for the metric cache."""

from src.hostwatch.monitoring.cache import MetricCache
from src.hostwatch.monitoring.models import (
    DiskSample,
    MetricFamily,
    SystemSample,
    TaskSample,
    UrlSample,
)


def test_starts_zero_valued():
    cache = MetricCache()
    assert cache.system == SystemSample(cpu_percent=0.0, memory_percent=0.0, disks=())
    assert cache.urls == ()
    assert cache.tasks == ()
    for family in MetricFamily:
        assert cache.updated_at(family) is None


def test_update_overwrites_only_that_family():
    cache = MetricCache()
    urls = (UrlSample(url="https://a", status_code=200, message="Success"),)
    cache.update(MetricFamily.URL, urls, at=100.0)

    system = SystemSample(cpu_percent=5.0, memory_percent=6.0, disks=(DiskSample("/", 7.0),))
    cache.update(MetricFamily.DISK, system, at=160.0)

    assert cache.urls == urls
    assert cache.system == system
    assert cache.tasks == ()
    assert cache.updated_at(MetricFamily.URL) == 100.0
    assert cache.updated_at(MetricFamily.DISK) == 160.0
    assert cache.updated_at(MetricFamily.TASK) is None


def test_newer_sample_replaces_older():
    cache = MetricCache()
    cache.update(MetricFamily.TASK, (TaskSample("a", "Ready", "Ready"),), at=1.0)
    cache.update(MetricFamily.TASK, (TaskSample("b", "Running", "Running"),), at=2.0)
    assert [task.name for task in cache.tasks] == ["b"]
    assert cache.get(MetricFamily.TASK) == (TaskSample("b", "Running", "Running"),)


def test_update_without_time_records_wall_clock():
    cache = MetricCache()
    cache.update(MetricFamily.URL, ())
    assert cache.updated_at(MetricFamily.URL) is not None
