# note_models.py
# Description: Value types shared by the notes cache DB, the pending-mutation queue and the sync layer.
#
# Imports
import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
#
# Third-Party Imports
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
#
# Local Imports
#
########################################################################################################################
#
# Functions:

TITLE_MAX_LENGTH = 100


def format_utc_timestamp(value: datetime) -> str:
    """ISO 8601 in UTC with microseconds and a trailing Z, e.g. 2024-01-15T10:00:00.000000Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return format_utc_timestamp(datetime.now(timezone.utc))


class InputError(ValueError):
    """Custom exception for input validation errors."""
    pass


class SyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"
    FAILED = "failed"


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REMOVE = "remove"


def normalize_tags(tags: Optional[List[str]]) -> List[str]:
    """Trims tags, drops empties and duplicates while keeping first-seen order."""
    seen = []
    for tag in tags or []:
        if not isinstance(tag, str):
            raise InputError(f"Tag must be a string, got {type(tag).__name__}.")
        cleaned = tag.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class NoteFields(BaseModel):
    """Validated field values of a note as entered by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str
    body: str
    tags: List[str] = []

    @field_validator("title")
    @classmethod
    def _title_length(cls, value: str) -> str:
        if not value:
            raise ValueError("Title is required")
        if len(value) > TITLE_MAX_LENGTH:
            raise ValueError(f"Title must be {TITLE_MAX_LENGTH} characters or less")
        return value

    @field_validator("body")
    @classmethod
    def _body_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Note content is required")
        return value

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, value: List[str]) -> List[str]:
        return normalize_tags(value)

    @classmethod
    def parse(cls, title: str, body: str, tags: Optional[List[str]] = None) -> "NoteFields":
        try:
            return cls(title=title, body=body, tags=tags or [])
        except ValidationError as e:
            first = e.errors()[0]
            raise InputError(f"Invalid note: {first.get('msg', str(e))}") from e


class NoteUpdate(BaseModel):
    """
    Partial update of a note. Only fields that were explicitly set are applied;
    an unset field is "absent", which is different from being set to a value.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = None
    body: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("title")
    @classmethod
    def _title_length(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value:
            raise ValueError("Title is required")
        if len(value) > TITLE_MAX_LENGTH:
            raise ValueError(f"Title must be {TITLE_MAX_LENGTH} characters or less")
        return value

    @field_validator("body")
    @classmethod
    def _body_required(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value:
            raise ValueError("Note content is required")
        return value

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, value: Optional[List[str]]) -> List[str]:
        if value is None:
            raise ValueError("Tags cannot be null; omit the field instead")
        return normalize_tags(value)

    @classmethod
    def parse(cls, **fields: Any) -> "NoteUpdate":
        try:
            return cls(**fields)
        except ValidationError as e:
            first = e.errors()[0]
            raise InputError(f"Invalid note update: {first.get('msg', str(e))}") from e

    def present_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def is_empty(self) -> bool:
        return not self.model_fields_set


def note_update_to_columns(update: NoteUpdate) -> Dict[str, Any]:
    """Maps the present fields of a NoteUpdate onto notes_cache column values."""
    columns: Dict[str, Any] = {}
    present = update.present_fields()
    if "title" in present:
        columns["title"] = present["title"]
    if "body" in present:
        columns["body"] = present["body"]
    if "tags" in present:
        columns["tags"] = json.dumps(present["tags"])
    return columns


@dataclass
class Note:
    id: str
    title: str
    body: str
    tags: List[str]
    updated_at: str
    local_updated_at: str
    sync_status: SyncStatus
    is_deleted: bool = False
    last_sync_error: Optional[str] = None
    creation_time: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Note":
        try:
            tags = json.loads(row["tags"]) if row["tags"] else []
        except json.JSONDecodeError:
            tags = []
        return cls(
            id=row["id"],
            title=row["title"],
            body=row["body"],
            tags=tags,
            updated_at=row["updated_at"],
            local_updated_at=row["local_updated_at"],
            sync_status=SyncStatus(row["sync_status"]),
            is_deleted=bool(row["is_deleted"]),
            last_sync_error=row["last_sync_error"],
            creation_time=row["creation_time"],
        )

    def to_fields(self) -> Dict[str, Any]:
        return {"title": self.title, "body": self.body, "tags": list(self.tags)}


@dataclass
class PendingMutation:
    id: int
    kind: MutationKind
    entity_id: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PendingMutation":
        return cls(
            id=row["id"],
            kind=MutationKind(row["type"]),
            entity_id=row["note_id"],
            payload=json.loads(row["payload"]) if row["payload"] else {},
            created_at=row["created_at"],
        )

    @property
    def target_id(self) -> Optional[str]:
        """The note id this mutation applies to (the temporary id for creates)."""
        if self.kind == MutationKind.CREATE:
            return self.payload.get("local_id")
        return self.entity_id

#
# End of note_models.py
#######################################################################################################################
