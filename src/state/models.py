from __future__ import annotations

from datetime import UTC, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Reading(BaseModel):
    """One accepted meter reading.

    `consumption` is 0 for the first reading of a season (the baseline) and the
    difference to the previous reading otherwise. Negative values are kept.
    """

    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime = Field(..., alias="date", description="When the reading was taken (UTC)")
    value: float = Field(..., description="Meter value as read from the display")
    consumption: float = Field(0.0, description="Delta to the previous reading")

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        # Backups may carry timestamps without an offset; treat them as UTC
        return v if v.tzinfo is not None else v.replace(tzinfo=UTC)


class AppState(BaseModel):
    """
    Whole application state, persisted as a single JSON snapshot.

    Fields
    - onboarded: the allowance has been configured at least once.
    - credential: Gemini API key used for reading extraction.
    - allowed_steps: meter increase allowed for the season.
    - season_limit: first reading value + allowed_steps (0 until a reading exists).
    - initial_photo: base64 JPEG of the season's first reading, if any.
    - readings: insertion-ordered, append-only list of `Reading`.

    Notes
    - JSON keys are the camelCase names of the backup file format
      (`apiKey`, `allowedSteps`, `seasonLimit`, `initialPhoto`, `date`).
    """

    model_config = ConfigDict(populate_by_name=True)

    onboarded: bool = False
    credential: str = Field("", alias="apiKey")
    allowed_steps: float = Field(0.0, alias="allowedSteps", ge=0)
    season_limit: float = Field(0.0, alias="seasonLimit")
    initial_photo: Optional[str] = Field(None, alias="initialPhoto")
    readings: List[Reading] = Field(default_factory=list)

    @field_validator("onboarded", mode="before")
    @classmethod
    def _null_onboarded(cls, v: object) -> object:
        return False if v is None else v

    @classmethod
    def empty(cls) -> "AppState":
        """Convenience constructor for a fresh, not yet onboarded state."""
        return cls()

    @property
    def latest(self) -> Optional[Reading]:
        return self.readings[-1] if self.readings else None
