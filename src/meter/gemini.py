from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx

from .logging import get_logger


DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"

DEFAULT_MODELS: tuple[str, ...] = (
    "gemini-3-flash",
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
    "gemini-2-flash",
)

READING_PROMPT = (
    "You are an expert at reading electricity meters. Read the number shown on "
    "the meter display in this image. Return ONLY the number, with no other text. "
    "If several numbers are shown, return the main one: the total consumption in kWh."
)

# HTTP statuses that mean "this model is unavailable right now, try the next one"
SKIP_STATUSES = frozenset({404, 429})

_NUMBER_PREFIX = re.compile(r"\d+\.?\d*|\.\d+")

log = get_logger("gemini")


class GeminiError(RuntimeError):
    """Base error for the reading-extraction client."""


class GeminiApiError(GeminiError):
    """A single model attempt failed (HTTP error, transport error, empty answer)."""


class ParseFailure(GeminiError):
    """The model answered, but not with a number."""


class ExtractionFailed(GeminiError):
    """Every candidate model failed; `last_error` holds the last recorded failure."""

    def __init__(self, message: str, *, last_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.last_error = last_error


@dataclass(frozen=True)
class ExtractionResult:
    reading: float
    model_used: str


class ProgressObserver(Protocol):
    def update(self, status: str) -> None:
        ...


def parse_reading(text: str) -> float:
    """Extract the meter value from free-form model output.

    Drops every character other than digits and dots, then reads the leading
    decimal number ("12.3.4" reads as 12.3). Raises `ParseFailure` if none.
    """
    cleaned = re.sub(r"[^0-9.]", "", text or "")
    m = _NUMBER_PREFIX.match(cleaned)
    if not m:
        raise ParseFailure(f"Model output is not a valid number: {text!r}")
    return float(m.group(0))


class GeminiClient:
    """
    Gemini `generateContent` client that reads a meter value from a photo.

    Notes
    - Candidate models are tried strictly in order, one request each. The first
      model that returns a parseable number wins.
    - 404/429 skip to the next model; any other failure is recorded and the next
      model is tried as well. No retries or backoff beyond the candidate list.
    - When every candidate fails, `ExtractionFailed` carries the last recorded
      error (or a generic message when all models were skipped).
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        models: Sequence[str] = DEFAULT_MODELS,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        if not models:
            raise ValueError("at least one model is required")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._models = tuple(models)
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)

    @property
    def models(self) -> tuple[str, ...]:
        return self._models

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "GeminiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def extract(self, image_b64: str, *, progress: Optional[ProgressObserver] = None) -> ExtractionResult:
        """
        Read the meter value from a base64 JPEG (see `meter.image.compress_image`).

        `progress.update()` is called before each attempt with a status line.
        """
        last_error: Optional[Exception] = None

        for model_id in self._models:
            if progress is not None:
                progress.update(f"Trying {model_id}...")
            try:
                reading = self._attempt(model_id, image_b64)
            except _SkipModel as skip:
                log.warning(f"Model {model_id} unavailable (HTTP {skip.status}); trying next")
                continue
            except GeminiError as exc:
                log.warning(f"Model {model_id} failed: {exc}")
                last_error = exc
                continue

            log.info(f"Read {reading} with {model_id}")
            return ExtractionResult(reading=reading, model_used=model_id)

        if last_error is not None:
            raise ExtractionFailed(str(last_error), last_error=last_error) from last_error
        raise ExtractionFailed("All Gemini models failed")

    # --------------- Internal ---------------
    def _url(self, model_id: str) -> str:
        return f"{self._base_url}/v1beta/models/{model_id}:generateContent"

    @staticmethod
    def _body(image_b64: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": READING_PROMPT},
                        {"inline_data": {"mime_type": "image/jpeg", "data": image_b64}},
                    ]
                }
            ]
        }

    def _attempt(self, model_id: str, image_b64: str) -> float:
        try:
            resp = self._client.post(
                self._url(model_id),
                params={"key": self._api_key},
                json=self._body(image_b64),
            )
        except httpx.RequestError as exc:
            raise GeminiApiError(f"Request to {model_id} failed: {exc.__class__.__name__}") from exc

        if resp.status_code in SKIP_STATUSES:
            raise _SkipModel(resp.status_code)
        if not resp.is_success:
            raise GeminiApiError(self._error_message(resp))

        try:
            payload = resp.json()
        except ValueError as exc:
            raise GeminiApiError(f"Non-JSON response from {model_id}") from exc

        text = self._extract_text(payload)
        if not text:
            raise GeminiApiError("Could not extract text from the image")
        return parse_reading(text)

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        # Error payloads look like {"error": {"code": 400, "message": "...", "status": "..."}}
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            err = payload.get("error")
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
        return f"Gemini API error (HTTP {resp.status_code})"

    @staticmethod
    def _extract_text(payload: Any) -> Optional[str]:
        # candidates[0].content.parts[0].text
        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None
        return text if isinstance(text, str) else None


class _SkipModel(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status}")
        self.status = status


def extract_reading(
    image_b64: str,
    credential: str,
    progress: Optional[ProgressObserver] = None,
    *,
    client: Optional[httpx.Client] = None,
    **kwargs: Any,
) -> ExtractionResult:
    """One-shot helper: build a `GeminiClient`, extract, close."""
    with GeminiClient(credential, client=client, **kwargs) as gemini:
        return gemini.extract(image_b64, progress=progress)


__all__ = [
    "DEFAULT_MODELS",
    "ExtractionFailed",
    "ExtractionResult",
    "GeminiApiError",
    "GeminiClient",
    "GeminiError",
    "ParseFailure",
    "ProgressObserver",
    "extract_reading",
    "parse_reading",
]
