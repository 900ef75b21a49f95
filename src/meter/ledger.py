"""
State transitions for the readings ledger.

Every function takes the current `AppState` and returns a new one; the input
is never mutated. Callers persist the result.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Optional

from state.models import AppState, Reading

from .logging import get_logger


log = get_logger("ledger")


def onboard(state: AppState, allowed_steps: float, credential: Optional[str] = None) -> AppState:
    """Configure the season allowance. A `None` credential keeps the stored one."""
    if allowed_steps <= 0:
        raise ValueError("allowed_steps must be > 0")
    new = update_settings(state, credential=credential, allowed_steps=allowed_steps)
    new.onboarded = True
    return new


def update_settings(
    state: AppState,
    *,
    credential: Optional[str] = None,
    allowed_steps: Optional[float] = None,
) -> AppState:
    """Change the credential and/or the allowance.

    A non-positive `allowed_steps` keeps the current value. When readings
    exist the season limit is recomputed from the first reading.
    """
    new = state.model_copy(deep=True)
    if credential is not None:
        new.credential = credential
    if allowed_steps is not None and allowed_steps > 0:
        new.allowed_steps = float(allowed_steps)
    if new.readings:
        new.season_limit = new.readings[0].value + new.allowed_steps
    return new


def add_reading(
    state: AppState,
    value: float,
    photo: Optional[str] = None,
    *,
    at: Optional[datetime] = None,
) -> AppState:
    """Append a reading.

    The first reading of a season is the baseline: it fixes the season limit,
    keeps `photo` as the reference image and records zero consumption. Later
    readings record the delta to the previous one, even when negative.
    """
    new = state.model_copy(deep=True)
    ts = at or datetime.now(UTC)
    value = float(value)

    if not new.readings:
        new.season_limit = value + new.allowed_steps
        new.initial_photo = photo
        consumption = 0.0
        log.info(f"Baseline reading {value}; season limit {new.season_limit}")
    else:
        consumption = value - new.readings[-1].value
        if consumption < 0:
            log.warning(f"Reading {value} is below the previous one ({new.readings[-1].value})")

    new.readings.append(Reading(timestamp=ts, value=value, consumption=consumption))
    return new


def reset_state() -> AppState:
    return AppState.empty()


__all__ = ["add_reading", "onboard", "reset_state", "update_settings"]
