# src/taskflow/tasks/task_views.py

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from enum import StrEnum
from typing import Any

from .task_models import Category, Priority, Task

_PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class SortOrder(StrEnum):
    DUE_DATE = "dueDate"
    PRIORITY = "priority"
    CREATED = "created"

    @classmethod
    def parse(cls, raw: Any) -> SortOrder:
        """Lenient: unknown values fall back to DUE_DATE."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw))
        except ValueError:
            return cls.DUE_DATE


def sort_tasks(tasks: Iterable[Task], sort_by: SortOrder | str = SortOrder.DUE_DATE) -> list[Task]:
    """
    Return a sorted copy.

    - dueDate:  earliest first, undated last
    - priority: high -> medium -> low
    - created:  newest first
    """
    order = SortOrder.parse(sort_by)
    out = list(tasks)

    if order is SortOrder.DUE_DATE:
        out.sort(key=lambda t: (t.due_date is None, t.due_date or date.min))
    elif order is SortOrder.PRIORITY:
        out.sort(key=lambda t: _PRIORITY_ORDER.get(t.priority, 3))
    elif order is SortOrder.CREATED:
        out.sort(key=lambda t: t.created_at, reverse=True)

    return out


def filter_tasks(
    tasks: Iterable[Task],
    *,
    category: Category | None = None,
    query: str = "",
) -> list[Task]:
    q = (query or "").strip().lower()
    out: list[Task] = []
    for t in tasks:
        if category is not None and t.category is not category:
            continue
        if q and q not in t.title.lower() and q not in (t.description or "").lower():
            continue
        out.append(t)
    return out


def split_completed(tasks: Iterable[Task]) -> tuple[list[Task], list[Task]]:
    active: list[Task] = []
    completed: list[Task] = []
    for t in tasks:
        (completed if t.completed else active).append(t)
    return active, completed


def is_overdue(d: date | None, today: date | None = None) -> bool:
    if d is None:
        return False
    return d < (today or date.today())


def is_today(d: date | None, today: date | None = None) -> bool:
    if d is None:
        return False
    return d == (today or date.today())


def format_due_date(d: date | None) -> str:
    # "Mar 15, 2025"
    if d is None:
        return ""
    return f"{d.strftime('%b')} {d.day}, {d.year}"


def truncate(text: str | None, max_len: int = 100) -> str:
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "…"
