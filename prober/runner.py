import logging
import threading
import time
from typing import Callable, List, Optional, Protocol

from prober.models import RunConfig, Sample

logger = logging.getLogger(__name__)

# (1-based sample number, sample)
SampleCallback = Callable[[int, Sample], None]


class Probe(Protocol):
    def measure(self, url: str) -> Sample: ...


class ScheduleLoop:
    """Drives a probe at a fixed cadence until a wall-clock deadline.

    Probes run one at a time. After each probe the loop sleeps for the interval
    unless the deadline has already passed; a slow probe pushes the next one back
    rather than being caught up, so the sample count for a run can be lower than
    ``duration / interval``.

    ``clock`` and ``sleep`` default to ``time.time`` and an interruptible wait on
    the stop event; tests inject fakes.
    """

    def __init__(self, probe: Probe,
                 clock: Callable[[], float] = time.time,
                 sleep: Optional[Callable[[float], None]] = None):
        self.probe = probe
        self.clock = clock
        self._stop = threading.Event()
        self._sleep = sleep or self._wait

    def _wait(self, seconds: float):
        self._stop.wait(seconds)

    def stop(self):
        """Ask the loop to finish; the current probe completes, no further probe starts.

        The request sticks: a stop that arrives before :meth:`run` makes that run
        return without probing, and a stopped loop stays stopped.
        """
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self, config: RunConfig, on_sample: Optional[SampleCallback] = None,
            samples: Optional[List[Sample]] = None) -> List[Sample]:
        """Probe ``config.url`` until the deadline and return the samples in issue order.

        ``samples`` may be passed to receive appends as they happen; if a
        KeyboardInterrupt lands mid-probe it still holds every completed sample.
        """
        samples = [] if samples is None else samples
        deadline = self.clock() + config.duration_seconds

        logger.info("Probing %s every %gs for %g min",
                    config.url, config.interval_seconds, config.duration_minutes)

        while self.clock() < deadline and not self.stopped:
            sample = self.probe.measure(config.url)
            samples.append(sample)
            if on_sample is not None:
                on_sample(len(samples), sample)

            if self.clock() < deadline and not self.stopped:
                self._sleep(config.interval_seconds)

        logger.info("Run finished: %d samples%s", len(samples),
                    " (stopped early)" if self.stopped else "")
        return samples
