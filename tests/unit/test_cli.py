from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any, List, Optional

import pytest

from meter.config import Settings
from meter.gemini import DEFAULT_MODELS, ExtractionFailed, ExtractionResult


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    state_path = tmp_path / "data" / "state.json"
    monkeypatch.setenv("METER_STATE_PATH", str(state_path))
    for name in ("METER_FERNET_KEY", "METER_GEMINI_MODELS", "METER_HTTP_TIMEOUT", "GEMINI_API_KEY", "METER_GEMINI_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    return state_path


class _FakeGemini:
    def __init__(self, *, reading: Optional[float] = None, error: Optional[Exception] = None) -> None:
        self.reading = reading
        self.error = error
        self.init_args: List[Any] = []
        self.calls: List[str] = []

    def __call__(self, api_key: str, **kwargs: Any) -> "_FakeGemini":
        self.init_args.append((api_key, kwargs))
        return self

    def __enter__(self) -> "_FakeGemini":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # noqa: ARG002
        return False

    def extract(self, image_b64: str, *, progress=None) -> ExtractionResult:
        self.calls.append(image_b64)
        if progress is not None:
            progress.update("Trying fake...")
        if self.error is not None:
            raise self.error
        return ExtractionResult(reading=self.reading, model_used="fake-model")


def _patch_gemini(monkeypatch: pytest.MonkeyPatch, fake: _FakeGemini) -> None:
    from tracker import handler

    monkeypatch.setattr(handler, "GeminiClient", fake)


def _saved(path: Path) -> dict:
    return json.loads(path.read_text())


def test_onboard_then_manual_readings_and_dashboard(env: Path, capsys):
    from tracker.cli import main

    assert main(["onboard", "--steps", "200", "--api-key", "K"]) == 0
    assert main(["add", "1000"]) == 0
    assert main(["add", "1030"]) == 0

    saved = _saved(env)
    assert saved["onboarded"] is True
    assert saved["seasonLimit"] == 1200.0
    assert [r["consumption"] for r in saved["readings"]] == [0.0, 30.0]

    capsys.readouterr()
    assert main(["dashboard"]) == 0
    out = capsys.readouterr().out
    assert "Remaining steps: 170 of 200" in out


def test_commands_require_onboarding(env: Path, capsys):
    from tracker.cli import main

    assert main(["add", "5"]) == 1
    assert "onboard" in capsys.readouterr().err
    assert not env.exists()


def test_capture_records_extracted_reading(env: Path, tmp_path: Path, jpeg_bytes: bytes, monkeypatch, capsys):
    from tracker.cli import main

    fake = _FakeGemini(reading=5120.0)
    _patch_gemini(monkeypatch, fake)
    photo = tmp_path / "meter.jpg"
    photo.write_bytes(jpeg_bytes)

    assert main(["onboard", "--steps", "300", "--api-key", "STATE-KEY"]) == 0
    assert main(["capture", str(photo)]) == 0

    captured = capsys.readouterr()
    assert "Trying fake..." in captured.err
    assert "Reading 5120 (model fake-model)" in captured.out

    api_key, kwargs = fake.init_args[0]
    assert api_key == "STATE-KEY"
    assert kwargs["models"] == DEFAULT_MODELS

    saved = _saved(env)
    assert saved["seasonLimit"] == 5420.0
    assert saved["initialPhoto"] == fake.calls[0]


def test_capture_failure_leaves_state_untouched(env: Path, tmp_path: Path, jpeg_bytes: bytes, monkeypatch, capsys):
    from tracker.cli import main

    _patch_gemini(monkeypatch, _FakeGemini(error=ExtractionFailed("All Gemini models failed")))
    photo = tmp_path / "meter.jpg"
    photo.write_bytes(jpeg_bytes)

    assert main(["onboard", "--steps", "300", "--api-key", "K"]) == 0
    assert main(["capture", str(photo)]) == 1
    assert "All Gemini models failed" in capsys.readouterr().err
    assert _saved(env)["readings"] == []


def test_capture_uses_env_api_key_when_state_has_none(env: Path, tmp_path: Path, jpeg_bytes: bytes, monkeypatch):
    from tracker.cli import main

    fake = _FakeGemini(reading=1.0)
    _patch_gemini(monkeypatch, fake)
    monkeypatch.setenv("GEMINI_API_KEY", "ENV-KEY")
    monkeypatch.setenv("METER_GEMINI_MODELS", "m-a, m-b")
    photo = tmp_path / "meter.jpg"
    photo.write_bytes(jpeg_bytes)

    assert main(["onboard", "--steps", "10"]) == 0
    assert main(["capture", str(photo)]) == 0
    api_key, kwargs = fake.init_args[0]
    assert api_key == "ENV-KEY"
    assert kwargs["models"] == ("m-a", "m-b")


def test_capture_without_any_api_key_fails(env: Path, tmp_path: Path, jpeg_bytes: bytes, monkeypatch):
    from tracker.cli import main

    _patch_gemini(monkeypatch, _FakeGemini(reading=1.0))
    photo = tmp_path / "meter.jpg"
    photo.write_bytes(jpeg_bytes)

    assert main(["onboard", "--steps", "10"]) == 0
    assert main(["capture", str(photo)]) == 1


def test_settings_recompute_limit(env: Path):
    from tracker.cli import main

    main(["onboard", "--steps", "100"])
    main(["add", "500"])
    assert main(["settings", "--steps", "250", "--api-key", "NEW"]) == 0

    saved = _saved(env)
    assert saved["allowedSteps"] == 250.0
    assert saved["seasonLimit"] == 750.0
    assert saved["apiKey"] == "NEW"


def test_export_import_and_reset(env: Path, tmp_path: Path, capsys):
    from tracker.cli import main

    main(["onboard", "--steps", "100"])
    main(["add", "10"])
    backups = tmp_path / "backups"
    assert main(["export", "--dir", str(backups)]) == 0
    (backup,) = list(backups.glob("meter_steps_backup_*.json"))
    original = _saved(env)

    assert main(["reset"]) == 1
    assert env.exists()
    assert main(["reset", "--yes"]) == 0
    assert not env.exists()

    assert main(["import", str(backup)]) == 0
    assert _saved(env) == original

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"readings": []}))
    capsys.readouterr()
    assert main(["import", str(bad)]) == 1
    assert "missing 'onboarded'" in capsys.readouterr().err


def test_onboard_rejects_non_positive_steps(env: Path):
    from tracker.cli import main

    with pytest.raises(SystemExit) as ei:
        main(["onboard", "--steps", "0"])
    assert ei.value.code == 2


def test_run_dashboard_returns_summary(env: Path):
    from tracker import handler

    store = handler.open_store(Settings.from_env())
    handler.run_onboard(store, 100)
    handler.run_add(store, 50)
    summary, text = handler.run_dashboard(store, today=date(2026, 1, 1))
    assert summary.remaining == 100.0
    assert summary.progress_percent == 100.0
    assert "Remaining steps: 100 of 100" in text


def test_settings_from_env_validates_timeout(monkeypatch):
    monkeypatch.setenv("METER_HTTP_TIMEOUT", "-1")
    with pytest.raises(RuntimeError):
        Settings.from_env()
    monkeypatch.setenv("METER_HTTP_TIMEOUT", "12.5")
    assert Settings.from_env().timeout == 12.5


def test_naive_dated_backup_then_add_and_dashboard(env: Path, tmp_path: Path, capsys):
    from tracker.cli import main

    backup = tmp_path / "backup.json"
    backup.write_text(
        json.dumps(
            {
                "onboarded": True,
                "apiKey": "K",
                "allowedSteps": 100,
                "seasonLimit": 1100,
                "readings": [{"date": "2025-11-01T10:00:00", "value": 1000, "consumption": 0}],
            }
        )
    )

    assert main(["import", str(backup)]) == 0
    assert main(["add", "1020"]) == 0
    capsys.readouterr()
    assert main(["dashboard"]) == 0
    assert "Remaining steps: 80 of 100" in capsys.readouterr().out
