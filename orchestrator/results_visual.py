import json
import math
from html import escape
from typing import Dict, List, Optional, Sequence

import pandas as pd

from prober.models import RunResult, Sample

CACHE_COLORS = {"HIT": "#22c55e", "STALE": "#f59e0b", "MISS": "#ef4444"}
DEFAULT_POINT_COLOR = "#6366f1"


def _js(value) -> str:
    """JSON for embedding inside a <script> block"""
    return json.dumps(value).replace("</", "<\\/")


def _measurements_frame(samples: Sequence[Sample]) -> pd.DataFrame:
    frame = pd.DataFrame(
        [s.to_dict() for s in samples],
        columns=["timestamp", "ttfb", "statusCode", "cacheStatus", "error"],
    )
    frame["ok"] = frame["error"].isna()
    return frame


def cache_breakdown(samples: Sequence[Sample]) -> Dict[str, int]:
    """Samples per cache-status label in order of first appearance; no header counts as 'none'"""
    if not samples:
        return {}
    labels = _measurements_frame(samples)["cacheStatus"].fillna("none")
    counts = labels.groupby(labels, sort=False).size()
    return {str(label): int(n) for label, n in counts.items()}


class ReportBuilder:
    """Self-contained HTML report (Chart.js from CDN) for one run"""

    def __init__(self, result: RunResult, cache_header: Optional[str] = None):
        self.result = result
        self.cache_header = cache_header or "x-nextjs-cache"
        self.frame = _measurements_frame(result.measurements)

    def build_report(self) -> str:
        return self._generate_html()

    def _chart_series(self):
        # UTC like the Timestamps card, so a shared report reads the same everywhere
        times = pd.to_datetime(self.frame["timestamp"], utc=True)
        labels: List[str] = list(times.dt.strftime("%H:%M:%S"))
        # a success that rounds to 0 ms is left out of the chart as it is of the stats
        data = [float(t) if ok and t > 0 else None for t, ok in zip(self.frame["ttfb"], self.frame["ok"])]
        cache = [None if pd.isna(c) else str(c) for c in self.frame["cacheStatus"]]
        colors = [CACHE_COLORS.get(c, DEFAULT_POINT_COLOR) for c in cache]
        return labels, data, cache, colors

    def _stat_card(self, label: str, value, unit: str) -> str:
        return f"""
            <div class="stat-card">
                <div class="stat-label">{escape(label)}</div>
                <div class="stat-value">{value}<span class="stat-unit">{unit}</span></div>
            </div>"""

    def _info_row(self, label: str, value: str) -> str:
        return f"""
                <div class="info-row">
                    <span class="label">{label}</span>
                    <span class="value">{value}</span>
                </div>"""

    def _cache_rows(self) -> str:
        total = self.result.stats.count or len(self.result.measurements)
        rows = []
        for status, count in cache_breakdown(self.result.measurements).items():
            pct = math.floor(count / total * 100 + 0.5) if total else 0
            badge = f'<span class="cache-badge cache-{escape(status.lower())}">{escape(status.upper())}</span>'
            rows.append(self._info_row(badge, f"{count} ({pct}%)"))
        return "".join(rows) or self._info_row("No measurements", "-")

    @staticmethod
    def _format_instant(iso: str) -> str:
        ts = pd.Timestamp(iso)
        ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
        return ts.strftime("%Y-%m-%d %H:%M:%S UTC")

    def _generate_html(self) -> str:
        r = self.result
        stats = r.stats
        labels, data, cache, colors = self._chart_series()

        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>TTFB Performance Report</title>
    <script src="https://cdn.jsdelivr.net/npm/chart.js"></script>
    <style>
        * {{ margin: 0; padding: 0; box-sizing: border-box; }}
        :root {{
            --bg-primary: #0a0a0f;
            --bg-card: #1a1a24;
            --text-primary: #e8e8ed;
            --text-secondary: #8b8b9a;
            --accent: #6366f1;
            --success: #22c55e;
            --warning: #f59e0b;
            --danger: #ef4444;
            --border: rgba(255, 255, 255, 0.08);
        }}
        body {{ font-family: -apple-system, sans-serif; background: var(--bg-primary); color: var(--text-primary); padding: 2rem; }}
        .container {{ max-width: 1400px; margin: 0 auto; }}
        header {{ text-align: center; margin-bottom: 3rem; }}
        h1 {{ font-size: 2.5rem; }}
        .url {{ color: var(--text-secondary); font-family: monospace; word-break: break-all; }}
        .stats-grid {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 1rem; margin-bottom: 2rem; }}
        .stat-card, .info-card, .chart-container {{ background: var(--bg-card); border: 1px solid var(--border); border-radius: 12px; padding: 1.5rem; }}
        .stat-label {{ color: var(--text-secondary); font-size: 0.85rem; text-transform: uppercase; }}
        .stat-value {{ font-size: 2rem; font-weight: 600; font-family: monospace; }}
        .stat-unit {{ font-size: 1rem; color: var(--text-secondary); margin-left: 0.25rem; }}
        .chart-wrapper {{ position: relative; height: 400px; }}
        .chart-container {{ margin-bottom: 2rem; }}
        .info-grid {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(300px, 1fr)); gap: 1rem; }}
        .info-card h3 {{ margin-bottom: 1rem; }}
        .info-row {{ display: flex; justify-content: space-between; padding: 0.5rem 0; border-bottom: 1px solid var(--border); }}
        .info-row .label {{ color: var(--text-secondary); }}
        .cache-badge {{ padding: 0.15rem 0.5rem; border-radius: 4px; font-family: monospace; background: var(--accent); }}
        .cache-hit {{ background: var(--success); }}
        .cache-stale {{ background: var(--warning); }}
        .cache-miss {{ background: var(--danger); }}
    </style>
</head>
<body>
    <div class="container">
        <header>
            <h1>TTFB Performance Report</h1>
            <p class="url">{escape(r.url)}</p>
        </header>

        <div class="stats-grid">{self._stat_card("Average", stats.average, "ms")}{self._stat_card("Median", stats.median, "ms")}{self._stat_card("P95", stats.p95, "ms")}{self._stat_card("Min", stats.min, "ms")}{self._stat_card("Max", stats.max, "ms")}{self._stat_card("Success Rate", stats.success_rate, "%")}
        </div>

        <div class="chart-container">
            <div class="chart-wrapper">
                <canvas id="ttfbChart"></canvas>
            </div>
        </div>

        <div class="info-grid">
            <div class="info-card">
                <h3>Test Configuration</h3>{self._info_row("Duration", f"{r.duration_minutes:g} minutes")}{self._info_row("Interval", f"{r.interval_seconds:g} seconds")}{self._info_row("Total Measurements", str(stats.count))}
            </div>
            <div class="info-card">
                <h3>Cache Statistics ({escape(self.cache_header)})</h3>{self._cache_rows()}
            </div>
            <div class="info-card">
                <h3>Timestamps</h3>{self._info_row("Start", self._format_instant(r.start_time))}{self._info_row("End", self._format_instant(r.end_time))}
            </div>
        </div>
    </div>

    <script>
        const ctx = document.getElementById('ttfbChart').getContext('2d');
        const cacheData = {_js(cache)};

        new Chart(ctx, {{
            type: 'line',
            data: {{
                labels: {_js(labels)},
                datasets: [{{
                    label: 'TTFB (ms)',
                    data: {_js(data)},
                    borderColor: '{DEFAULT_POINT_COLOR}',
                    borderWidth: 2,
                    tension: 0.3,
                    pointRadius: 4,
                    pointBackgroundColor: {_js(colors)},
                    spanGaps: true
                }}]
            }},
            options: {{
                responsive: true,
                maintainAspectRatio: false,
                interaction: {{ intersect: false, mode: 'index' }},
                plugins: {{
                    legend: {{ display: false }},
                    tooltip: {{
                        callbacks: {{
                            label: function(context) {{
                                const cache = cacheData[context.dataIndex] || '-';
                                return context.parsed.y !== null
                                    ? ['TTFB: ' + context.parsed.y + ' ms', 'Cache: ' + cache]
                                    : 'Error';
                            }}
                        }}
                    }}
                }},
                scales: {{
                    x: {{ title: {{ display: true, text: 'Time (UTC)' }} }},
                    y: {{ beginAtZero: true, ticks: {{ callback: function(value) {{ return value + ' ms'; }} }} }}
                }}
            }}
        }});
    </script>
</body>
</html>
"""
