"""
models/intent.py
Values that flow between pipeline stages.
"""

from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Action sentinel for utterances with nothing to do (chit-chat, songs, silence)
NO_ACTION = "none"

DATE_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])$"
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

_NULL_STRINGS = {"", "null", "none", "n/a"}


class TranscriptionResult(BaseModel):
    """Raw speech-to-text output. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    text: str
    model: Optional[str] = None


class IntentRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str = Field(..., min_length=1, description="verb + noun, or 'none'")
    date: Optional[str] = Field(None, pattern=DATE_PATTERN, description="YYYY-MM-DD")
    time: Optional[str] = Field(None, pattern=TIME_PATTERN, description="HH:MM, 24-hour")
    summary: str = Field(
        ...,
        validation_alias=AliasChoices("get_summary", "summary"),
        serialization_alias="get_summary",
    )

    @field_validator("date", "time", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        # Models sometimes write null as a string
        if isinstance(value, str) and value.strip().lower() in _NULL_STRINGS:
            return None
        return value

    @property
    def is_actionable(self) -> bool:
        return self.action.strip().lower() != NO_ACTION


class ExtractionEnvelope(BaseModel):
    """Full JSON body the extraction provider must return."""

    normalized_text: str
    intent: IntentRecord
