# src/taskflow/tasks/recurrence.py

"""
Recurrence engine.

next_occurrence() is pure calendar arithmetic; materialize_next() turns a task
that is being completed into the record for its next cycle.

Month and year steps normalize like calendar date overflow: a day that
does not exist in the target month carries into the following month
(2025-01-31 + 1 month -> 2025-03-03, 2024-02-29 + 1 year -> 2025-03-01).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Any

from .task_models import Recurrence, Task, TaskValidationError, generate_id, parse_date, utc_now

logger = logging.getLogger(__name__)


def _add_months(d: date, months: int) -> date:
    total = d.year * 12 + (d.month - 1) + months
    year, month0 = divmod(total, 12)
    return date(year, month0 + 1, 1) + timedelta(days=d.day - 1)


def _parse_rule(rule: Any) -> Recurrence | None:
    if rule is None:
        return None
    try:
        parsed = Recurrence(rule) if isinstance(rule, str) else None
    except ValueError:
        return None
    if parsed is None or parsed is Recurrence.NONE:
        return None
    return parsed


def next_occurrence(current: date | str | None, rule: Recurrence | str | None) -> date | None:
    """Next due date one recurrence step after `current`, or None."""
    recurrence = _parse_rule(rule)
    if recurrence is None:
        return None

    if isinstance(current, datetime):
        current = current.date()
    try:
        start = parse_date(current)
    except TaskValidationError:
        return None
    if start is None:
        return None

    try:
        if recurrence is Recurrence.DAILY:
            return start + timedelta(days=1)
        if recurrence is Recurrence.WEEKLY:
            return start + timedelta(days=7)
        if recurrence is Recurrence.MONTHLY:
            return _add_months(start, 1)
        if recurrence is Recurrence.YEARLY:
            return _add_months(start, 12)
    except (OverflowError, ValueError):
        logger.debug("next_occurrence overflow start=%s rule=%s", start, recurrence.value)
        return None
    return None


def materialize_next(task: Task, *, now: datetime | None = None) -> Task | None:
    """
    Build the next occurrence of a recurring task that is being completed.

    Returns None for non-recurring tasks, tasks without a due date, or when the
    next date cannot be computed. The sibling copies the user fields, gets a new
    id/created_at and starts incomplete.
    """
    if task.recurrence is Recurrence.NONE or task.due_date is None:
        return None

    next_due = next_occurrence(task.due_date, task.recurrence)
    if next_due is None:
        return None

    return replace(
        task,
        id=generate_id(),
        due_date=next_due,
        completed=False,
        completed_at=None,
        created_at=now or utc_now(),
    )
