"""
Sample and run-result records, and the JSON schema they serialize to.
"""

from __future__ import annotations

import pytest

from prober.models import FAILED_TTFB, RunConfig, RunResult, Sample, SummaryStats


def test_sample_requires_ttfb_or_error() -> None:
    with pytest.raises(ValueError):
        Sample(timestamp="2026-01-01T00:00:00.000Z")
    with pytest.raises(ValueError):
        Sample(timestamp="2026-01-01T00:00:00.000Z", ttfb=12.0, error="boom")
    with pytest.raises(ValueError):
        Sample(timestamp="2026-01-01T00:00:00.000Z", ttfb=-1)


def test_sample_is_immutable() -> None:
    sample = Sample(timestamp="2026-01-01T00:00:00.000Z", ttfb=10.0)

    with pytest.raises(AttributeError):
        sample.ttfb = 20.0


def test_failed_sample_serializes_sentinel() -> None:
    sample = Sample.failure("2026-01-01T00:00:00.000Z", "Request timeout (45s)")

    assert sample.to_dict() == {
        "timestamp": "2026-01-01T00:00:00.000Z",
        "ttfb": FAILED_TTFB,
        "statusCode": None,
        "cacheStatus": None,
        "error": "Request timeout (45s)",
    }


def test_sentinel_is_read_back_as_failure() -> None:
    sample = Sample.from_dict({
        "timestamp": "2026-01-01T00:00:00.000Z",
        "ttfb": -1,
        "statusCode": None,
        "cacheStatus": None,
        "error": "socket hang up",
    })

    assert not sample.ok
    assert sample.ttfb is None
    assert sample.error == "socket hang up"


def test_run_result_schema_field_names() -> None:
    result = RunResult(
        url="https://example.com",
        start_time="2026-01-01T00:00:00.000Z",
        end_time="2026-01-01T00:20:00.000Z",
        duration_minutes=20,
        interval_seconds=10,
        measurements=[
            Sample(timestamp="2026-01-01T00:00:00.000Z", ttfb=87.5, status_code=200, cache_status="HIT"),
            Sample.failure("2026-01-01T00:00:10.000Z", "connect ECONNREFUSED"),
        ],
        stats=SummaryStats(count=2, min=87.5, max=87.5, average=87.5, median=87.5, p95=87.5, success_rate=50),
    )

    data = result.to_dict()

    assert list(data) == ["url", "startTime", "endTime", "durationMinutes", "intervalSeconds",
                          "measurements", "stats"]
    assert list(data["stats"]) == ["count", "min", "max", "average", "median", "p95", "successRate"]
    assert data["measurements"][0]["cacheStatus"] == "HIT"
    assert RunResult.from_dict(data) == result


def test_run_config_expected_samples() -> None:
    assert RunConfig(url="https://example.com").expected_samples == 120
    assert RunConfig(url="https://example.com", duration_minutes=1, interval_seconds=7).expected_samples == 8
