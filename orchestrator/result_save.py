from pathlib import Path
from datetime import datetime, timezone
from typing import List, Tuple
import json
import logging
import shutil

from prober.models import RunResult

logger = logging.getLogger(__name__)

RESULTS_FILE = "results.json"
REPORT_FILE = "report.html"


def create_run_dir(base_dir: Path = Path("results")) -> Path:
    """Create a fresh directory for one run, named after the UTC start time"""
    dir_name = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    run_dir = base_dir / dir_name

    counter = 1
    while run_dir.exists():
        run_dir = base_dir / f"{dir_name}_{counter:02d}"
        counter += 1

    run_dir.mkdir(parents=True)
    return run_dir


class ResultStore:
    def __init__(self, out_dir: Path):
        self.out = out_dir
        self.out.mkdir(parents=True, exist_ok=True)

    @property
    def results_path(self) -> Path:
        return self.out / RESULTS_FILE

    @property
    def report_path(self) -> Path:
        return self.out / REPORT_FILE

    def save(self, result: RunResult) -> Path:
        self.results_path.write_text(json.dumps(result.to_dict(), indent=2))
        logger.info("Saved %d measurements to %s", len(result.measurements), self.results_path)
        return self.results_path

    def save_report(self, html: str) -> Path:
        self.report_path.write_text(html, encoding="utf-8")
        return self.report_path


def load_result(path: Path) -> RunResult:
    """Load a saved run; accepts either results.json or the run directory holding it"""
    if path.is_dir():
        path = path / RESULTS_FILE
    with open(path) as f:
        return RunResult.from_dict(json.load(f))


def list_runs(base_dir: Path = Path("results")) -> List[Tuple[Path, float]]:
    """Run directories under base_dir with their mtimes, newest first"""
    if not base_dir.exists():
        return []
    runs = [
        (item, item.stat().st_mtime)
        for item in base_dir.iterdir()
        if item.is_dir() and not item.name.startswith('.')
    ]
    runs.sort(key=lambda x: x[1], reverse=True)
    return runs


def clean_runs(base_dir: Path = Path("results"), keep: int = 5) -> List[Path]:
    """Delete all but the newest `keep` run directories; returns what was removed"""
    if keep < 0:
        raise ValueError(f"keep must be >= 0, got {keep}")
    removed = []
    for dir_path, _ in list_runs(base_dir)[keep:]:
        try:
            shutil.rmtree(dir_path)
        except OSError as e:
            logger.warning("Failed to remove %s: %s", dir_path, e)
            continue
        logger.info("Removed old run %s", dir_path)
        removed.append(dir_path)
    return removed
