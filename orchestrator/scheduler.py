import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from metrics.latency import summarize
from orchestrator.result_save import ResultStore
from orchestrator.results_visual import ReportBuilder
from prober.models import RunConfig, RunResult, Sample, utc_now_iso
from prober.probes.ttfb_probe import TTFBProbe
from prober.runner import SampleCallback, ScheduleLoop

logger = logging.getLogger(__name__)

# NOTE: single target, one probe in flight at a time


class RunInterrupted(Exception):
    """The run was cut short by Ctrl+C; carries the partial result that was saved"""

    def __init__(self, result: RunResult, paths: Dict[str, Path]):
        super().__init__(f"run interrupted after {len(result.measurements)} samples")
        self.result = result
        self.paths = paths


def build_loop(config: RunConfig) -> ScheduleLoop:
    probe = TTFBProbe(
        timeout_s=config.timeout_seconds,
        cache_header=config.cache_header,
        follow_redirects=config.follow_redirects,
    )
    return ScheduleLoop(probe)


def finalize(config: RunConfig, start_time: str, samples: List[Sample]) -> RunResult:
    return RunResult(
        url=config.url,
        start_time=start_time,
        end_time=utc_now_iso(),
        duration_minutes=config.duration_minutes,
        interval_seconds=config.interval_seconds,
        measurements=list(samples),
        stats=summarize(samples),
    )


def save_run(result: RunResult, out_dir: Path, cache_header: Optional[str] = None) -> Dict[str, Path]:
    store = ResultStore(out_dir)
    return {
        "json": store.save(result),
        "html": store.save_report(ReportBuilder(result, cache_header).build_report()),
    }


def run_monitor(config: RunConfig, out_dir: Path,
                on_sample: Optional[SampleCallback] = None,
                loop: Optional[ScheduleLoop] = None) -> Tuple[RunResult, Dict[str, Path]]:
    """Probe for the configured window, then summarize and write results.json and report.html.

    A KeyboardInterrupt ends the run early; the samples completed so far are
    still summarized and saved, then RunInterrupted is raised with them.
    """
    loop = loop or build_loop(config)
    samples: List[Sample] = []
    start_time = utc_now_iso()

    try:
        loop.run(config, on_sample=on_sample, samples=samples)
    except KeyboardInterrupt:
        logger.warning("Interrupted after %d samples, saving partial run", len(samples))
        result = finalize(config, start_time, samples)
        raise RunInterrupted(result, save_run(result, out_dir, config.cache_header)) from None

    result = finalize(config, start_time, samples)
    return result, save_run(result, out_dir, config.cache_header)
