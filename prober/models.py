from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

# Serialized ttfb value for a failed probe
FAILED_TTFB = -1


def utc_now_iso() -> str:
    """Current instant as ISO-8601 UTC with millisecond precision, e.g. 2026-01-01T12:00:00.123Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Sample:
    """Outcome of one probe.

    ``ttfb`` is the time to first byte in milliseconds for a successful probe and
    ``None`` for a failed one; ``error`` is set exactly when the probe failed.
    """

    timestamp: str
    ttfb: Optional[float] = None
    status_code: Optional[int] = None
    cache_status: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.error is None and (self.ttfb is None or self.ttfb < 0):
            raise ValueError("successful sample needs a non-negative ttfb")
        if self.error is not None and self.ttfb is not None:
            raise ValueError("failed sample cannot carry a ttfb")

    @classmethod
    def failure(cls, timestamp: str, error: str) -> "Sample":
        return cls(timestamp=timestamp, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "ttfb": self.ttfb if self.ok else FAILED_TTFB,
            "statusCode": self.status_code,
            "cacheStatus": self.cache_status,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sample":
        error = data.get("error")
        ttfb = data.get("ttfb")
        if error is None and (ttfb is None or ttfb < 0):
            error = "Unknown error"
        return cls(
            timestamp=data["timestamp"],
            ttfb=None if error is not None else float(ttfb),
            status_code=data.get("statusCode"),
            cache_status=data.get("cacheStatus"),
            error=error,
        )


@dataclass(frozen=True)
class RunConfig:
    url: str
    duration_minutes: float = 20
    interval_seconds: float = 10
    timeout_seconds: float = 45
    cache_header: str = "x-nextjs-cache"
    follow_redirects: bool = False

    @property
    def duration_seconds(self) -> float:
        return self.duration_minutes * 60

    @property
    def expected_samples(self) -> int:
        """Sample count if every probe completed instantly"""
        return int(self.duration_seconds // self.interval_seconds)


@dataclass(frozen=True)
class SummaryStats:
    count: int = 0
    min: float = 0.0
    max: float = 0.0
    average: float = 0.0
    median: float = 0.0
    p95: float = 0.0
    success_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "min": self.min,
            "max": self.max,
            "average": self.average,
            "median": self.median,
            "p95": self.p95,
            "successRate": self.success_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SummaryStats":
        return cls(
            count=int(data.get("count", 0)),
            min=data.get("min", 0.0),
            max=data.get("max", 0.0),
            average=data.get("average", 0.0),
            median=data.get("median", 0.0),
            p95=data.get("p95", 0.0),
            success_rate=data.get("successRate", 0.0),
        )


@dataclass
class RunResult:
    """Everything one monitoring run produced, in the shape written to results.json"""

    url: str
    start_time: str
    end_time: str
    duration_minutes: float
    interval_seconds: float
    measurements: List[Sample] = field(default_factory=list)
    stats: SummaryStats = field(default_factory=SummaryStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationMinutes": self.duration_minutes,
            "intervalSeconds": self.interval_seconds,
            "measurements": [m.to_dict() for m in self.measurements],
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunResult":
        return cls(
            url=data["url"],
            start_time=data["startTime"],
            end_time=data["endTime"],
            duration_minutes=data["durationMinutes"],
            interval_seconds=data["intervalSeconds"],
            measurements=[Sample.from_dict(m) for m in data.get("measurements", [])],
            stats=SummaryStats.from_dict(data.get("stats", {})),
        )
