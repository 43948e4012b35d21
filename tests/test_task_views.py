# tests/test_task_views.py

from __future__ import annotations

from datetime import date, timedelta

from taskflow.tasks.task_models import Category, Priority
from taskflow.tasks.task_views import (
    SortOrder,
    filter_tasks,
    format_due_date,
    is_overdue,
    is_today,
    sort_tasks,
    split_completed,
    truncate,
)

from .fakes import BASE_TS, make_task


def _titles(tasks) -> list[str]:
    return [t.title for t in tasks]


def test_sort_by_due_date_puts_undated_last() -> None:
    tasks = [
        make_task("none"),
        make_task("late", due_date=date(2025, 4, 1)),
        make_task("early", due_date=date(2025, 3, 1)),
    ]
    assert _titles(sort_tasks(tasks, SortOrder.DUE_DATE)) == ["early", "late", "none"]


def test_sort_by_priority() -> None:
    tasks = [
        make_task("low", priority=Priority.LOW),
        make_task("high", priority=Priority.HIGH),
        make_task("medium", priority=Priority.MEDIUM),
    ]
    assert _titles(sort_tasks(tasks, "priority")) == ["high", "medium", "low"]


def test_sort_by_created_newest_first() -> None:
    tasks = [
        make_task("old", created_at=BASE_TS),
        make_task("new", created_at=BASE_TS + timedelta(days=2)),
        make_task("mid", created_at=BASE_TS + timedelta(days=1)),
    ]
    assert _titles(sort_tasks(tasks, SortOrder.CREATED)) == ["new", "mid", "old"]


def test_sort_returns_copy_and_unknown_order_falls_back() -> None:
    tasks = [make_task("b", due_date=date(2025, 5, 1)), make_task("a", due_date=date(2025, 1, 1))]
    out = sort_tasks(tasks, "alphabetical")
    assert _titles(out) == ["a", "b"]
    assert _titles(tasks) == ["b", "a"]


def test_filter_by_category_and_query() -> None:
    tasks = [
        make_task("Buy milk", category=Category.SHOPPING),
        make_task("Write report", category=Category.WORK, description="quarterly numbers"),
        make_task("Call mom"),
    ]
    assert _titles(filter_tasks(tasks, category=Category.WORK)) == ["Write report"]
    assert _titles(filter_tasks(tasks, query="MILK")) == ["Buy milk"]
    assert _titles(filter_tasks(tasks, query="quarterly")) == ["Write report"]
    assert _titles(filter_tasks(tasks, category=Category.SHOPPING, query="report")) == []
    assert len(filter_tasks(tasks)) == 3


def test_split_completed() -> None:
    active, completed = split_completed([make_task("a"), make_task("b", completed=True)])
    assert _titles(active) == ["a"]
    assert _titles(completed) == ["b"]


def test_due_date_helpers() -> None:
    today = date(2025, 3, 15)
    assert is_overdue(date(2025, 3, 14), today) is True
    assert is_overdue(today, today) is False
    assert is_overdue(None, today) is False
    assert is_today(today, today) is True
    assert is_today(None, today) is False

    assert format_due_date(date(2025, 3, 15)) == "Mar 15, 2025"
    assert format_due_date(date(2025, 3, 5)) == "Mar 5, 2025"
    assert format_due_date(None) == ""


def test_truncate() -> None:
    assert truncate(None) == ""
    assert truncate("short") == "short"
    assert truncate("x" * 100) == "x" * 100
    assert truncate("x" * 101) == "x" * 100 + "…"
    assert truncate("abcdef", max_len=3) == "abc…"
