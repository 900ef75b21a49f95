from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional, Tuple

from meter.config import Settings
from meter.dashboard import DashboardSummary, summarize
from meter.gemini import ExtractionResult, GeminiClient, ProgressObserver
from meter.image import load_image_file
from meter.ledger import add_reading, onboard, reset_state, update_settings
from meter.logging import get_logger
from meter.report import format_dashboard
from state.local_store import LocalStateStore
from state.models import AppState


log = get_logger("tracker")


class NotOnboarded(RuntimeError):
    """The allowance has not been configured yet."""


def open_store(settings: Settings) -> LocalStateStore:
    return LocalStateStore(settings.state_path, fernet_key=settings.fernet_key)


def _require_onboarded(state: AppState) -> None:
    if not state.onboarded:
        raise NotOnboarded("Not set up yet: run 'onboard --steps N' first")


def run_onboard(store: LocalStateStore, steps: float, api_key: Optional[str] = None) -> AppState:
    state = onboard(store.load(), steps, api_key)
    store.save(state)
    log.info(f"Onboarded with {steps:g} allowed steps")
    return state


def run_settings(store: LocalStateStore, *, steps: Optional[float] = None, api_key: Optional[str] = None) -> AppState:
    state = store.load()
    _require_onboarded(state)
    state = update_settings(state, credential=api_key, allowed_steps=steps)
    store.save(state)
    return state


def run_capture(
    store: LocalStateStore,
    settings: Settings,
    photo: Path,
    *,
    progress: Optional[ProgressObserver] = None,
) -> Tuple[AppState, ExtractionResult]:
    """Read the meter from `photo`, then record the value as a new reading."""
    state = store.load()
    _require_onboarded(state)
    credential = settings.credential_for(state.credential)

    image_b64 = load_image_file(photo)
    with GeminiClient(
        credential,
        base_url=settings.base_url,
        models=settings.models,
        timeout=settings.timeout,
    ) as gemini:
        result = gemini.extract(image_b64, progress=progress)

    state = add_reading(state, result.reading, image_b64)
    store.save(state)
    return state, result


def run_add(store: LocalStateStore, value: float) -> AppState:
    """Record a reading typed in by hand (no photo)."""
    state = store.load()
    _require_onboarded(state)
    state = add_reading(state, value)
    store.save(state)
    return state


def run_dashboard(store: LocalStateStore, *, today: Optional[date] = None) -> Tuple[DashboardSummary, str]:
    state = store.load()
    _require_onboarded(state)
    summary = summarize(state, today=today)
    return summary, format_dashboard(summary, today=today)


def run_export(store: LocalStateStore, directory: Path) -> Path:
    return store.export_backup(store.load(), directory)


def run_import(store: LocalStateStore, path: Path) -> AppState:
    return store.import_backup(path)


def run_reset(store: LocalStateStore) -> AppState:
    store.reset()
    return reset_state()
