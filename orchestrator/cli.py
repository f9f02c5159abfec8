from pathlib import Path
import logging
import typer
from typing import Optional
from datetime import datetime

from orchestrator.config import ConfigError, build_run_config, load_run_config
from orchestrator.result_save import clean_runs, create_run_dir, list_runs, load_result, REPORT_FILE
from orchestrator.results_visual import ReportBuilder
from orchestrator.scheduler import RunInterrupted, run_monitor
from prober.models import RunResult, Sample

app = typer.Typer(help="TTFB monitor - measure Time To First Byte of a URL over time")

RULE = "─" * 75


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def format_sample_row(number: int, sample: Sample) -> str:
    """One progress line: number, local time, TTFB or ERROR, cache label, status"""
    time_str = datetime.fromisoformat(sample.timestamp.replace("Z", "+00:00")).astimezone().strftime("%H:%M:%S")
    ttfb_str = f"{sample.ttfb:.2f} ms" if sample.ok else "ERROR"
    cache_str = sample.cache_status or "-"
    status_str = f"FAIL {sample.error}" if not sample.ok else f"OK {sample.status_code}"
    return f"  {number:>3}   {time_str}   {ttfb_str:>10}   {cache_str:<10}  {status_str}"


def _echo_stats(result: RunResult):
    stats = result.stats
    typer.echo("\n" + RULE)
    typer.echo("\nStatistics:\n")
    typer.echo(f"   Average:   {stats.average} ms")
    typer.echo(f"   Minimum:   {stats.min} ms")
    typer.echo(f"   Maximum:   {stats.max} ms")
    typer.echo(f"   Median:    {stats.median} ms")
    typer.echo(f"   P95:       {stats.p95} ms")
    typer.echo(f"   Success:   {stats.success_rate}%")


@app.command()
def run(
    url: Optional[str] = typer.Option(None, help="URL to test (http/https)"),
    duration: Optional[float] = typer.Option(None, help="Duration in minutes [default: 20]"),
    interval: Optional[float] = typer.Option(None, help="Seconds between probe starts [default: 10]"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML run file; flags override it"),
    timeout: Optional[float] = typer.Option(None, help="Per-probe timeout in seconds [default: 45]"),
    cache_header: Optional[str] = typer.Option(None, help="Response header used as cache label [default: x-nextjs-cache]"),
    follow_redirects: Optional[bool] = typer.Option(None, "--follow-redirects/--no-follow-redirects",
                                                    help="Measure to the final response after redirects"),
    out: Optional[Path] = typer.Option(None, help="Results base directory [default: results]"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Probe a URL at a fixed interval and save results.json and report.html"""
    _setup_logging(verbose)

    try:
        file_cfg = load_run_config(config) if config else {}
        run_cfg = build_run_config(
            file_cfg,
            url=url,
            duration=duration,
            interval=interval,
            timeout=timeout,
            cache_header=cache_header,
            follow_redirects=follow_redirects,
        )
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        typer.echo("\nUsage: ttfb-monitor run --url <url> [--duration <minutes>] [--interval <seconds>]", err=True)
        raise typer.Exit(code=1)

    base_dir = out or Path(file_cfg.get("output_dir", "results"))
    run_dir = create_run_dir(base_dir)

    typer.echo("\nTTFB Performance Monitor\n")
    typer.echo(f"  URL:      {run_cfg.url}")
    typer.echo(f"  Duration: {run_cfg.duration_minutes:g} minutes")
    typer.echo(f"  Interval: {run_cfg.interval_seconds:g} seconds")
    typer.echo(f"  Tests:    {run_cfg.expected_samples} measurements\n")
    typer.echo(RULE)
    typer.echo("  #     Time          TTFB        Cache       Status")
    typer.echo(RULE)

    def on_sample(number: int, sample: Sample):
        typer.echo(format_sample_row(number, sample))

    exit_code = 0
    try:
        result, paths = run_monitor(run_cfg, run_dir, on_sample=on_sample)
    except RunInterrupted as e:
        typer.echo("\nInterrupted, saving partial results")
        result, paths = e.result, e.paths
        exit_code = 130

    _echo_stats(result)
    typer.echo(f"\nResults saved: {paths['json']}")
    typer.echo(f"HTML report: {paths['html']}")

    if exit_code:
        raise typer.Exit(code=exit_code)
    typer.echo("\nTest completed!\n")


@app.command()
def report(
    results_json: Path = typer.Argument(..., help="results.json or the run directory containing it"),
    out: Optional[Path] = typer.Option(None, help="Output HTML file [default: report.html next to the results]"),
    cache_header: Optional[str] = typer.Option(None, help="Header name shown in the cache card"),
):
    """Rebuild the HTML report from a saved run"""
    try:
        result = load_result(results_json)
    except (OSError, ValueError, KeyError, TypeError) as e:
        typer.echo(f"Cannot load {results_json}: {e}", err=True)
        raise typer.Exit(code=1)

    if out is None:
        run_dir = results_json if results_json.is_dir() else results_json.parent
        out = run_dir / REPORT_FILE
    out.write_text(ReportBuilder(result, cache_header).build_report(), encoding="utf-8")
    typer.echo(f"HTML report: {out}")


@app.command()
def results(dir: Path = typer.Option(Path("results"), "--dir", help="Results base directory")):
    """List recent run directories"""
    if not dir.exists():
        typer.echo("No results directory found")
        return

    result_dirs = list_runs(dir)
    if not result_dirs:
        typer.echo("No results found")
        return

    typer.echo("Recent results:")
    for i, (dir_path, mtime) in enumerate(result_dirs[:10]):  # last 10
        timestamp = datetime.fromtimestamp(mtime).strftime("%Y-%m-%d %H:%M:%S")
        typer.echo(f"  {i+1:2d}. {dir_path.name} ({timestamp})")

    if len(result_dirs) > 10:
        typer.echo(f"  ... and {len(result_dirs) - 10} more")


@app.command()
def clean(
    dir: Path = typer.Option(Path("results"), "--dir", help="Results base directory"),
    keep: int = typer.Option(5, min=0, help="Number of newest runs to keep"),
):
    """Clean old run directories (keep the newest N)"""
    if not dir.exists():
        typer.echo("No results directory found")
        return

    stale = list_runs(dir)[keep:]
    if not stale:
        typer.echo("No old results")
        return

    typer.echo(f"Cleaning {len(stale)} old result directories...")
    removed = clean_runs(dir, keep)
    for dir_path in removed:
        typer.echo(f"  Removed: {dir_path.name}")
    for dir_path, _ in stale:
        if dir_path not in removed:
            typer.echo(f"  Failed to remove {dir_path.name}")


if __name__ == "__main__":
    app()
