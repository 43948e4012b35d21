# tests/test_recurrence.py

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from taskflow.tasks.recurrence import materialize_next, next_occurrence
from taskflow.tasks.task_models import Category, Priority, Recurrence

from .fakes import make_task


@pytest.mark.parametrize(
    ("current", "rule", "expected"),
    [
        ("2025-03-15", "daily", date(2025, 3, 16)),
        ("2025-03-31", "daily", date(2025, 4, 1)),
        ("2025-12-31", "daily", date(2026, 1, 1)),
        ("2025-03-15", "weekly", date(2025, 3, 22)),
        ("2025-03-15", "monthly", date(2025, 4, 15)),
        ("2025-03-15", "yearly", date(2026, 3, 15)),
        ("2025-12-15", "monthly", date(2026, 1, 15)),
    ],
)
def test_next_occurrence_steps(current, rule, expected) -> None:
    assert next_occurrence(current, rule) == expected


def test_next_occurrence_accepts_dates_and_enum_rules() -> None:
    assert next_occurrence(date(2025, 3, 15), Recurrence.WEEKLY) == date(2025, 3, 22)
    assert next_occurrence(datetime(2025, 3, 15, 23, 0, tzinfo=UTC), "daily") == date(2025, 3, 16)


@pytest.mark.parametrize(
    ("current", "rule"),
    [
        ("2025-03-15", "none"),
        ("2025-03-15", Recurrence.NONE),
        ("2025-03-15", None),
        ("2025-03-15", "hourly"),
        ("2025-03-15", 7),
        (None, "daily"),
        ("", "daily"),
        ("not-a-date", "weekly"),
    ],
)
def test_next_occurrence_none_cases(current, rule) -> None:
    assert next_occurrence(current, rule) is None


def test_next_occurrence_past_calendar_end_is_none() -> None:
    assert next_occurrence(date(9999, 12, 31), "daily") is None
    assert next_occurrence(date(9999, 12, 15), "monthly") is None


def test_month_and_year_rollover_carries_into_next_month() -> None:
    assert next_occurrence("2025-01-31", "monthly") == date(2025, 3, 3)
    assert next_occurrence("2024-01-31", "monthly") == date(2024, 3, 2)
    assert next_occurrence("2025-03-31", "monthly") == date(2025, 5, 1)
    assert next_occurrence("2024-02-29", "yearly") == date(2025, 3, 1)
    assert next_occurrence("2024-02-29", "monthly") == date(2024, 3, 29)


@pytest.mark.parametrize("rule", ["daily", "weekly", "monthly", "yearly"])
def test_repeated_application_is_strictly_increasing(rule) -> None:
    d = date(2025, 3, 15)
    for _ in range(30):
        nxt = next_occurrence(d, rule)
        assert nxt is not None
        assert nxt > d
        d = nxt


def test_monthly_repetition_keeps_day_of_month() -> None:
    d = date(2025, 3, 15)
    seen = []
    for _ in range(12):
        d = next_occurrence(d, "monthly")
        seen.append((d.year, d.month, d.day))
    assert seen[0] == (2025, 4, 15)
    assert seen[-1] == (2026, 3, 15)
    assert all(day == 15 for _, _, day in seen)


def test_materialize_next_copies_user_fields_with_fresh_identity() -> None:
    task = make_task(
        "Water plants",
        due_date=date(2025, 3, 15),
        recurrence=Recurrence.WEEKLY,
        priority=Priority.HIGH,
        category=Category.HEALTH,
        description="balcony",
        completed=True,
    )
    now = datetime(2025, 3, 15, 18, 0, tzinfo=UTC)

    sibling = materialize_next(task, now=now)

    assert sibling is not None
    assert sibling.id != task.id
    assert sibling.due_date == date(2025, 3, 22)
    assert sibling.created_at == now
    assert sibling.completed is False
    assert sibling.completed_at is None
    assert (sibling.title, sibling.description) == ("Water plants", "balcony")
    assert (sibling.priority, sibling.category, sibling.recurrence) == (
        Priority.HIGH,
        Category.HEALTH,
        Recurrence.WEEKLY,
    )


def test_materialize_next_skips_non_recurring_and_undated() -> None:
    assert materialize_next(make_task(due_date=date(2025, 3, 15))) is None
    assert materialize_next(make_task(recurrence=Recurrence.DAILY)) is None
    assert materialize_next(make_task(due_date=date(9999, 12, 31), recurrence=Recurrence.DAILY)) is None
