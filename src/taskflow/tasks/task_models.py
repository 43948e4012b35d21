# src/taskflow/tasks/task_models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

TITLE_MAX_LEN = 200
DESCRIPTION_MAX_LEN = 500


class TaskValidationError(ValueError):
    """Rejected user input (empty title, bad date, unknown enum value...)."""


class _Vocabulary(StrEnum):
    """
    Closed vocabulary with a default member.

    parse():
    - None / "" -> default
    - member or its value -> member
    - anything else -> TaskValidationError
    """

    @classmethod
    def default(cls) -> _Vocabulary:
        raise NotImplementedError

    @classmethod
    def parse(cls, raw: Any):
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return cls.default()
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise TaskValidationError(
                f"Unknown {cls.__name__.lower()} {raw!r} (expected one of: {allowed})"
            ) from None


class Priority(_Vocabulary):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def default(cls) -> Priority:
        return cls.MEDIUM


class Category(_Vocabulary):
    PERSONAL = "personal"
    WORK = "work"
    HEALTH = "health"
    SHOPPING = "shopping"
    OTHER = "other"

    @classmethod
    def default(cls) -> Category:
        return cls.PERSONAL


class Recurrence(_Vocabulary):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def default(cls) -> Recurrence:
        return cls.NONE


def generate_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_date(raw: Any) -> date | None:
    """Parse a calendar date (date or 'YYYY-MM-DD'). Empty -> None."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        try:
            return date.fromisoformat(raw.strip())
        except ValueError:
            pass
    raise TaskValidationError(f"Invalid date {raw!r} (expected YYYY-MM-DD)")


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        ts = raw
    elif isinstance(raw, str):
        try:
            ts = datetime.fromisoformat(raw.strip())
        except ValueError:
            raise TaskValidationError(f"Invalid timestamp {raw!r}") from None
    else:
        raise TaskValidationError(f"Invalid timestamp {raw!r}")
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


def _clean_title(raw: Any) -> str:
    title = str(raw or "").strip()
    if not title:
        raise TaskValidationError("Title is required")
    if len(title) > TITLE_MAX_LEN:
        raise TaskValidationError(f"Title is longer than {TITLE_MAX_LEN} characters")
    return title


def _clean_description(raw: Any) -> str:
    description = str(raw or "").strip()
    if len(description) > DESCRIPTION_MAX_LEN:
        raise TaskValidationError(f"Description is longer than {DESCRIPTION_MAX_LEN} characters")
    return description


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    created_at: datetime

    description: str = ""
    due_date: date | None = None
    priority: Priority = Priority.MEDIUM
    category: Category = Category.PERSONAL
    recurrence: Recurrence = Recurrence.NONE

    completed: bool = False
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Cache payload (camelCase, JSON-safe)."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "priority": self.priority.value,
            "category": self.category.value,
            "recurrence": self.recurrence.value,
            "completed": self.completed,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Task:
        if not isinstance(data, dict):
            raise TaskValidationError("Task payload must be an object")
        task_id = data.get("id")
        if not isinstance(task_id, str) or not task_id:
            raise TaskValidationError("Task payload has no id")
        created_at = parse_timestamp(data.get("createdAt"))
        if created_at is None:
            raise TaskValidationError(f"Task {task_id} has no createdAt")

        # Only a JSON true counts ("false", 1 and the like do not).
        completed = data.get("completed") is True
        completed_at = parse_timestamp(data.get("completedAt")) if completed else None
        if completed and completed_at is None:
            # Payloads written before completedAt existed.
            completed_at = created_at

        return cls(
            id=task_id,
            title=_clean_title(data.get("title")),
            created_at=created_at,
            description=_clean_description(data.get("description")),
            due_date=parse_date(data.get("dueDate")),
            priority=Priority.parse(data.get("priority")),
            category=Category.parse(data.get("category")),
            recurrence=Recurrence.parse(data.get("recurrence")),
            completed=completed,
            completed_at=completed_at,
        )


@dataclass(frozen=True, slots=True)
class TaskDraft:
    """
    User-editable fields of a task, already normalized.

    Build drafts through TaskDraft.build(); it trims text, checks the limits and
    parses enum/date input so invalid values never reach storage.
    """

    title: str
    description: str = ""
    due_date: date | None = None
    priority: Priority = Priority.MEDIUM
    category: Category = Category.PERSONAL
    recurrence: Recurrence = Recurrence.NONE
    id: str | None = None

    @classmethod
    def build(
        cls,
        *,
        title: str,
        description: str | None = "",
        due_date: date | str | None = None,
        priority: Priority | str | None = None,
        category: Category | str | None = None,
        recurrence: Recurrence | str | None = None,
        id: str | None = None,
    ) -> TaskDraft:
        return cls(
            title=_clean_title(title),
            description=_clean_description(description),
            due_date=parse_date(due_date),
            priority=Priority.parse(priority),
            category=Category.parse(category),
            recurrence=Recurrence.parse(recurrence),
            id=id,
        )

    @classmethod
    def from_task(cls, task: Task) -> TaskDraft:
        return cls(
            title=task.title,
            description=task.description,
            due_date=task.due_date,
            priority=task.priority,
            category=task.category,
            recurrence=task.recurrence,
            id=task.id,
        )
