"""Tests for latency helpers."""

from datetime import datetime, timedelta, timezone

from mailflow_probe.latency import as_utc, elapsed_ms, latency_ms

BASE = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def test_latency_is_symmetric():
    later = BASE + timedelta(seconds=5, microseconds=250)
    assert latency_ms(BASE, later) == latency_ms(later, BASE)


def test_latency_rounds_up_partial_milliseconds():
    assert latency_ms(BASE, BASE + timedelta(microseconds=1)) == 1
    assert latency_ms(BASE, BASE + timedelta(milliseconds=5000)) == 5000
    assert latency_ms(BASE, BASE + timedelta(microseconds=5000001)) == 5001


def test_latency_zero_for_equal_timestamps():
    assert latency_ms(BASE, BASE) == 0


def test_latency_mixes_naive_and_aware():
    naive = datetime(2024, 1, 1, 10, 0, 2)
    assert latency_ms(BASE, naive) == 2000


def test_latency_across_timezones():
    plus_two = timezone(timedelta(hours=2))
    same_instant = datetime(2024, 1, 1, 12, 0, 0, tzinfo=plus_two)
    assert latency_ms(BASE, same_instant) == 0


def test_as_utc():
    assert as_utc(None) is None
    assert as_utc(datetime(2024, 1, 1)).tzinfo is timezone.utc


def test_elapsed_ms_never_negative():
    assert elapsed_ms(1.0, 1.25) == 250
    assert elapsed_ms(2.0, 1.0) == 0
