# field_notes/notes_api/schemas.py
# Wire models for the notes REST API. Field names on the wire are camelCase.
from datetime import datetime, timezone
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..DB.note_models import format_utc_timestamp


def normalize_server_timestamp(value: Any) -> str:
    """Accepts an ISO-8601 string or epoch milliseconds and returns ISO-8601 UTC with a trailing Z."""
    if isinstance(value, bool):
        raise ValueError("updatedAt must be a timestamp, not a boolean")
    if isinstance(value, (int, float)):
        return format_utc_timestamp(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
    if isinstance(value, datetime):
        return format_utc_timestamp(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return format_utc_timestamp(datetime.fromisoformat(text))
        except ValueError as e:
            raise ValueError(f"Unrecognized updatedAt value: {value!r}") from e
    raise ValueError(f"Unrecognized updatedAt value: {value!r}")


class RemoteNote(BaseModel):
    """A note as the server knows it."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    body: str
    tags: List[str] = Field(default_factory=list)
    updated_at: str = Field(alias="updatedAt")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("updated_at", mode="before")
    @classmethod
    def _normalize_updated_at(cls, value: Any) -> str:
        return normalize_server_timestamp(value)


class CreateNoteRequest(BaseModel):
    title: str
    body: str
    tags: List[str] = Field(default_factory=list)


class UpdateNoteRequest(BaseModel):
    """Partial update; fields left as None are not sent."""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    body: Optional[str] = None
    tags: Optional[List[str]] = None
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
