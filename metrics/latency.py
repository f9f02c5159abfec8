from typing import Iterable, List, Sequence
import statistics

from metrics.util import round2, nearest_rank
from prober.models import Sample, SummaryStats


def successful_ttfbs(samples: Iterable[Sample]) -> List[float]:
    """TTFB values of samples that count as successes (ttfb > 0), in input order"""
    return [s.ttfb for s in samples if s.ok and s.ttfb > 0]


def summarize(samples: Sequence[Sample]) -> SummaryStats:
    """Summary statistics for one run.

    Latency figures cover successful samples only; ``count`` and
    ``success_rate`` cover every sample. With no successes all latency figures
    are 0. The p95 is nearest-rank, not interpolated.
    """
    count = len(samples)
    values = sorted(successful_ttfbs(samples))

    if not values:
        return SummaryStats(count=count)

    return SummaryStats(
        count=count,
        min=round2(values[0]),
        max=round2(values[-1]),
        average=round2(statistics.fmean(values)),
        median=round2(statistics.median(values)),
        p95=round2(nearest_rank(values, 0.95)),
        success_rate=round2(len(values) / count * 100),
    )
