import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from taskstore.core.errors import MappingError
from taskstore.core.logger import setup_logger

logger = setup_logger(__name__, include_location=True)


class PriorityLevel(str, Enum):
    """Values of the `priority_level` Postgres enum, lowest first."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    # str comparison would order the labels alphabetically
    def __lt__(self, other):
        if not isinstance(other, PriorityLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, PriorityLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, PriorityLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, PriorityLevel):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: Any) -> "PriorityLevel":
        """Accept enum members, labels ("High") and names in any case ("high")."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if value.strip().lower() == member.value.lower():
                    return member
        raise ValueError(f"unknown priority level: {value!r}")


_PRIORITY_RANK = {PriorityLevel.LOW: 0, PriorityLevel.MEDIUM: 1, PriorityLevel.HIGH: 2}

# Column aliases produced by the repository's SELECT list, keyed by model field.
ROW_COLUMNS = {
    "id": "todo_id",
    "description": "todo_task",
    "priority": "todo_priority",
    "created_at": "todo_created_at",
    "expired_at": "todo_expired_at",
    "completed_at": "todo_completed_at",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(BaseModel):
    """
    One row of the `todo` table.

    `id` and `created_at` are set at construction and cannot be reassigned.
    A task is completed exactly when `completed_at` is set.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, frozen=True)
    description: str
    priority: PriorityLevel
    created_at: datetime = Field(default_factory=utcnow, frozen=True)
    expired_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator('priority', mode='before')
    def coerce_priority(cls, v):
        return PriorityLevel.parse(v)

    @field_validator('created_at', 'expired_at', 'completed_at')
    def ensure_utc(cls, v):
        if v is None:
            return v
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("timestamp must be timezone-aware")
        return v.astimezone(timezone.utc)

    @classmethod
    def new(
        cls,
        description: str,
        priority: PriorityLevel,
        expired_at: Optional[datetime] = None,
    ) -> "Task":
        """Fresh in-memory task: new uuid4, created now (UTC), not completed."""
        return cls(description=description, priority=priority, expired_at=expired_at)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def toggle_complete(self) -> "Task":
        # Local only; call TaskRepository.save() to persist.
        self.completed_at = None if self.completed_at is not None else utcnow()
        return self

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Task":
        """
        Decode a result row selected with the ROW_COLUMNS aliases.

        Raises:
            MappingError: a column is missing, null where required, or of the wrong type
        """
        values = {}
        for field, column in ROW_COLUMNS.items():
            try:
                values[field] = row[column]
            except KeyError:
                raise MappingError(field, f"column '{column}' missing from row") from None

        for field in ("id", "description", "priority", "created_at"):
            if values[field] is None:
                raise MappingError(field, f"column '{ROW_COLUMNS[field]}' is null")

        try:
            return cls(**values)
        except ValidationError as e:
            errors = e.errors(include_input=False, include_url=False)
            logger.error(f"Task row validation error: {json.dumps(errors, default=str)}")
            first = errors[0]
            field = str(first["loc"][0]) if first.get("loc") else "<row>"
            raise MappingError(field, first["msg"]) from e

    def to_params(self) -> dict:
        """Statement parameters for the repository's upsert."""
        return {
            "id": self.id,
            "task": self.description,
            "priority": self.priority.value,
            "created_at": self.created_at,
            "expired_at": self.expired_at,
            "completed_at": self.completed_at,
        }
