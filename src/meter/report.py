from __future__ import annotations

from datetime import date
from typing import List, Optional

from .dashboard import Anomaly, DashboardSummary


GAUGE_WIDTH = 20
CHART_WIDTH = 30


def _fmt_kw(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value:.1f} kW"


def _fmt_day(d: Optional[date]) -> str:
    if d is None:
        return "insufficient data"
    return d.strftime("%d %b %Y")


def _gauge(percent: float, *, width: int = GAUGE_WIDTH) -> str:
    filled = int(round(min(percent, 100.0) / 100.0 * width))
    return "[" + "#" * filled + "-" * (width - filled) + f"] {percent:.0f}%"


def format_anomaly_alert(anomaly: Optional[Anomaly]) -> Optional[str]:
    """Alert text for a flagged consumption peak, or None when nothing to say."""
    if anomaly is None or not anomaly.flagged:
        return None
    if anomaly.severity_pct is None:
        extra = "above the usual"
    else:
        extra = f"+{anomaly.severity_pct:.0f}% extra consumption"
    return f"⚠ Unusual peak detected: {extra} (latest {anomaly.recent:g} vs avg {anomaly.mean_prior:.1f})"


def format_chart(summary: DashboardSummary, *, width: int = CHART_WIDTH) -> str:
    if not summary.chart:
        return "No readings yet"
    peak = max((abs(c) for _, c in summary.chart), default=0.0)
    lines: List[str] = []
    for ts, consumption in summary.chart:
        bar_len = int(round(abs(consumption) / peak * width)) if peak > 0 else 0
        bar = ("-" if consumption < 0 else "█") * bar_len
        lines.append(f"{ts.strftime('%d %b')} | {bar} {consumption:g}")
    return "\n".join(lines)


def format_dashboard(summary: DashboardSummary, *, today: Optional[date] = None) -> str:
    """Plain-text dashboard: remaining steps, gauge, averages, alert and trend."""
    d = today or date.today()
    parts = [
        d.strftime("%A, %d %B"),
        "",
        f"Remaining steps: {round(summary.remaining)} of {summary.allowed_steps:g}",
        _gauge(summary.progress_percent),
    ]
    if summary.latest_value is not None:
        parts.append(f"Latest reading: {summary.latest_value:g}")
    parts += [
        f"Estimated exhaustion: {_fmt_day(summary.estimated_exhaustion)}",
        f"Weekly average: {_fmt_kw(summary.weekly_average)}",
        f"Monthly average: {_fmt_kw(summary.monthly_average)}",
    ]

    alert = format_anomaly_alert(summary.anomaly)
    if alert:
        parts += ["", alert]

    parts += ["", "Consumption (last readings):", format_chart(summary)]
    return "\n".join(parts)


__all__ = ["format_anomaly_alert", "format_chart", "format_dashboard"]
