from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .gemini import DEFAULT_BASE_URL, DEFAULT_MODELS


ENV_STATE_PATH = "METER_STATE_PATH"
ENV_FERNET_KEY = "METER_FERNET_KEY"
ENV_BASE_URL = "METER_GEMINI_BASE_URL"
ENV_MODELS = "METER_GEMINI_MODELS"
ENV_TIMEOUT = "METER_HTTP_TIMEOUT"
ENV_API_KEY = "GEMINI_API_KEY"

DEFAULT_STATE_PATH = ".meter/state.json"
DEFAULT_TIMEOUT = 30.0


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _parse_models(s: Optional[str]) -> Tuple[str, ...]:
    if not s:
        return DEFAULT_MODELS
    raw = s.replace("\n", ",").replace(" ", ",")
    models = [m.strip() for m in raw.split(",") if m.strip()]
    # Dedup while preserving order
    seen: set[str] = set()
    out = []
    for m in models:
        if m not in seen:
            seen.add(m)
            out.append(m)
    return tuple(out) or DEFAULT_MODELS


def _parse_timeout(s: Optional[str]) -> float:
    if not s:
        return DEFAULT_TIMEOUT
    try:
        val = float(s)
    except ValueError as ex:
        raise RuntimeError(f"{ENV_TIMEOUT} must be a number, got {s!r}") from ex
    if val <= 0:
        raise RuntimeError(f"{ENV_TIMEOUT} must be > 0")
    return val


@dataclass(frozen=True)
class Settings:
    state_path: Path
    fernet_key: Optional[str]
    base_url: str
    models: Tuple[str, ...]
    timeout: float
    api_key: Optional[str]

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            state_path=Path(_getenv(ENV_STATE_PATH, DEFAULT_STATE_PATH) or DEFAULT_STATE_PATH),
            fernet_key=_getenv(ENV_FERNET_KEY),
            base_url=_getenv(ENV_BASE_URL, DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
            models=_parse_models(_getenv(ENV_MODELS)),
            timeout=_parse_timeout(_getenv(ENV_TIMEOUT)),
            api_key=_getenv(ENV_API_KEY),
        )

    def credential_for(self, state_credential: str) -> str:
        """Key stored in the state wins; GEMINI_API_KEY is the fallback."""
        return _require(state_credential or self.api_key, f"Gemini API key (settings or {ENV_API_KEY})")


__all__ = ["Settings"]
