from __future__ import annotations

import json
import os
from datetime import date
from pathlib import Path
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from meter.logging import get_logger

from .models import AppState


DEFAULT_STATE_PATH = Path(".meter") / "state.json"
BACKUP_NAME_TEMPLATE = "meter_steps_backup_{day}.json"

log = get_logger("state")


class InvalidBackupFormat(ValueError):
    """Imported file is not a state backup."""


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a user-provided key.

    The key must be a URL-safe base64-encoded 32-byte key (str or bytes),
    as returned by `cryptography.fernet.Fernet.generate_key()`.
    """
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


def _state_payload(state: AppState) -> dict[str, Any]:
    return state.model_dump(mode="json", by_alias=True)


def _dump_state_json(state: AppState) -> bytes:
    # Deterministic JSON: stable key order, no extra whitespace
    return json.dumps(_state_payload(state), separators=(",", ":"), sort_keys=True).encode("utf-8")


def _load_state_json(data: bytes) -> AppState:
    raw = json.loads(data.decode("utf-8"))
    return AppState.model_validate(raw)


def export_state(state: AppState) -> str:
    """Serialize `state` as the human-readable backup JSON."""
    return json.dumps(_state_payload(state), indent=2, ensure_ascii=False)


def import_state(text: str | bytes) -> AppState:
    """Parse backup JSON into an `AppState`.

    Only checks that the payload is an object carrying an `onboarded` field;
    anything else, including schema errors, is an `InvalidBackupFormat`.
    """
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as ex:
        raise InvalidBackupFormat(f"Backup is not valid JSON: {ex}") from ex
    if not isinstance(raw, dict) or "onboarded" not in raw:
        raise InvalidBackupFormat("Invalid backup format: missing 'onboarded' field")
    try:
        return AppState.model_validate(raw)
    except ValidationError as ve:
        raise InvalidBackupFormat(f"Invalid backup format: {ve}") from ve


class LocalStateStore:
    """
    Single-file persistence for `AppState`, optionally encrypted at rest.

    Usage
    - `load()` returns the saved state, or `AppState.empty()` if nothing is saved.
    - `save(state)` overwrites the snapshot with the whole state.
    - `export_backup(state, directory)` writes a dated plain-JSON backup.
    - `import_backup(path)` validates a backup and makes it the saved state.
    - `reset()` removes the snapshot.

    Encryption
    - With `fernet_key` (urlsafe base64, see `Fernet.generate_key()`) the
      snapshot is encrypted at rest. Backups are always plain JSON.
    """

    def __init__(self, path: Optional[os.PathLike[str] | str] = None, *, fernet_key: str | bytes | None = None) -> None:
        self._path = Path(path) if path else DEFAULT_STATE_PATH
        self._fernet = _to_fernet(fernet_key) if fernet_key else None

    @property
    def path(self) -> Path:
        return self._path

    # -------- Core operations --------
    def load(self) -> AppState:
        """Read the snapshot.

        Returns `AppState.empty()` when no snapshot exists.
        Raises:
        - ValueError if decryption fails or content is invalid.
        """
        if not self._path.exists():
            log.debug(f"No snapshot at {self._path}; starting fresh")
            return AppState.empty()

        body = self._path.read_bytes()
        if self._fernet is not None:
            try:
                body = self._fernet.decrypt(body)
            except InvalidToken as ex:
                raise ValueError("Failed to decrypt state: invalid Fernet token") from ex

        try:
            return _load_state_json(body)
        except (ValueError, ValidationError) as ex:
            raise ValueError(f"Failed to parse state snapshot at {self._path}") from ex

    def save(self, state: AppState) -> None:
        payload = _dump_state_json(state)
        if self._fernet is not None:
            payload = self._fernet.encrypt(payload)

        # Whole-state overwrite through a sibling temp file
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        tmp.write_bytes(payload)
        os.replace(tmp, self._path)
        log.debug(f"Saved state with {len(state.readings)} reading(s) to {self._path}")

    def reset(self) -> None:
        if self._path.exists():
            self._path.unlink()
            log.info(f"Removed snapshot {self._path}")

    # -------- Backups --------
    def export_backup(self, state: AppState, directory: os.PathLike[str] | str = ".", *, day: Optional[date] = None) -> Path:
        d = day or date.today()
        out = Path(directory) / BACKUP_NAME_TEMPLATE.format(day=d.isoformat())
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(export_state(state), encoding="utf-8")
        log.info(f"Exported backup to {out}")
        return out

    def import_backup(self, path: os.PathLike[str] | str) -> AppState:
        """Load a backup file and replace the saved state with it."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except UnicodeDecodeError as ex:
            raise InvalidBackupFormat(f"Backup is not a text file: {path}") from ex
        state = import_state(text)
        self.save(state)
        log.info(f"Imported backup {path} ({len(state.readings)} reading(s))")
        return state


__all__ = [
    "LocalStateStore",
    "InvalidBackupFormat",
    "export_state",
    "import_state",
]
