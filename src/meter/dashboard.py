from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from state.models import AppState, Reading


ANOMALY_FACTOR = 1.5
ANOMALY_MIN_READINGS = 3
CHART_POINTS = 7
SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class Anomaly:
    """Latest consumption compared with the mean of all earlier ones."""

    recent: float
    mean_prior: float
    flagged: bool
    severity_pct: Optional[float]  # None when mean_prior <= 0


@dataclass(frozen=True)
class DashboardSummary:
    """
    Everything the dashboard shows, derived from one `AppState`.

    Averages and the exhaustion date are `None` when there is not enough
    history (fewer than two readings, or no positive consumption yet).
    """

    allowed_steps: float
    remaining: float
    progress_percent: float
    latest_value: Optional[float]
    daily_average: Optional[float]
    weekly_average: Optional[float]
    monthly_average: Optional[float]
    estimated_exhaustion: Optional[date]
    anomaly: Optional[Anomaly]
    chart: List[Tuple[datetime, float]] = field(default_factory=list)


def remaining_allowance(state: AppState) -> float:
    latest = state.latest
    if latest is None:
        return state.allowed_steps
    return max(0.0, state.season_limit - latest.value)


def progress_percent(state: AppState) -> float:
    """Share of the allowance still available, in percent.

    Not capped at 100: readings that go backwards can push it above.
    """
    if not state.readings or state.allowed_steps <= 0:
        return 0.0
    return max(0.0, remaining_allowance(state) / state.allowed_steps * 100.0)


def days_between(first: datetime, last: datetime) -> float:
    return (last - first).total_seconds() / SECONDS_PER_DAY


def daily_average(readings: Sequence[Reading]) -> Optional[float]:
    """Total consumption over the elapsed days (at least one day)."""
    if len(readings) < 2:
        return None
    total = sum(r.consumption for r in readings)
    span = max(1.0, days_between(readings[0].timestamp, readings[-1].timestamp))
    return total / span


def estimate_exhaustion(remaining: float, daily: Optional[float], *, today: Optional[date] = None) -> Optional[date]:
    """Day the allowance runs out at the current pace, if consumption is positive."""
    if daily is None or daily <= 0:
        return None
    start = today or date.today()
    return start + timedelta(days=int(remaining / daily))


def detect_anomaly(readings: Sequence[Reading]) -> Optional[Anomaly]:
    if len(readings) < ANOMALY_MIN_READINGS:
        return None
    consumptions = [r.consumption for r in readings]
    recent = consumptions[-1]
    prior = consumptions[:-1]
    mean_prior = sum(prior) / len(prior)
    flagged = recent > mean_prior * ANOMALY_FACTOR
    severity = (recent / mean_prior - 1.0) * 100.0 if mean_prior > 0 else None
    return Anomaly(recent=recent, mean_prior=mean_prior, flagged=flagged, severity_pct=severity)


def chart_series(readings: Sequence[Reading], points: int = CHART_POINTS) -> List[Tuple[datetime, float]]:
    """(timestamp, consumption) of the last `points` readings, oldest first."""
    return [(r.timestamp, r.consumption) for r in readings[-points:]]


def summarize(state: AppState, *, today: Optional[date] = None) -> DashboardSummary:
    remaining = remaining_allowance(state)
    daily = daily_average(state.readings)
    latest = state.latest
    return DashboardSummary(
        allowed_steps=state.allowed_steps,
        remaining=remaining,
        progress_percent=progress_percent(state),
        latest_value=latest.value if latest else None,
        daily_average=daily,
        weekly_average=daily * 7 if daily is not None else None,
        monthly_average=daily * 30 if daily is not None else None,
        estimated_exhaustion=estimate_exhaustion(remaining, daily, today=today),
        anomaly=detect_anomaly(state.readings),
        chart=chart_series(state.readings),
    )


__all__ = [
    "Anomaly",
    "DashboardSummary",
    "chart_series",
    "daily_average",
    "detect_anomaly",
    "estimate_exhaustion",
    "progress_percent",
    "remaining_allowance",
    "summarize",
]
