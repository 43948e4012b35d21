# src/taskflow/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
import shlex
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.state import AppState
from ..tasks.task_models import Category, Task, TaskDraft, TaskValidationError
from ..tasks.task_views import (
    SortOrder,
    filter_tasks,
    format_due_date,
    is_overdue,
    is_today,
    sort_tasks,
    split_completed,
    truncate,
)

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[..., "str | Awaitable[str]"]

logger = logging.getLogger(__name__)

SHORT_ID_LEN = 8

# --flag -> TaskDraft field
_DRAFT_FLAGS = {
    "title": "title",
    "note": "description",
    "desc": "description",
    "due": "due_date",
    "priority": "priority",
    "category": "category",
    "repeat": "recurrence",
}


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Handlers take (state, args) or (state, args, emit) and may be async.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Could not parse command: {e}"
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        logger.debug("Command /%s (%d args)", name, len(args))

        try:
            result: Any = handler(state, args, emit) if nparams >= 3 else handler(state, args)
            if inspect.isawaitable(result):
                result = await result
        except TaskValidationError as e:
            return f"Invalid task: {e}"
        return str(result)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def parse_flags(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split ["Buy", "milk", "--due", "2025-03-15"] into words and {flag: value}."""
    words: list[str] = []
    flags: dict[str, str] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg.startswith("--") and len(arg) > 2:
            name = arg[2:].lower()
            if name not in _DRAFT_FLAGS:
                raise TaskValidationError(f"unknown option --{name}")
            if i + 1 >= len(args):
                raise TaskValidationError(f"--{name} needs a value")
            flags[_DRAFT_FLAGS[name]] = args[i + 1]
            i += 2
            continue
        words.append(arg)
        i += 1
    return words, flags


def resolve_task(state: AppState, ref: str) -> Task | str:
    """Find a task by full id or unique id prefix. Returns an error string otherwise."""
    ref = ref.strip()
    if not ref:
        return "Task id is required."
    matches = [t for t in state.coordinator.tasks if t.id == ref or t.id.startswith(ref)]
    if not matches:
        return f"No task matches id {ref!r}."
    if len(matches) > 1:
        return f"Id {ref!r} is ambiguous ({len(matches)} tasks); use more characters."
    return matches[0]


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    parts = [f"[{mark}] {task.id[:SHORT_ID_LEN]} {truncate(task.title, 60)}"]
    if task.due_date:
        due = format_due_date(task.due_date)
        if not task.completed and is_overdue(task.due_date):
            due += " (overdue)"
        elif is_today(task.due_date):
            due += " (today)"
        parts.append(f"due {due}")
    parts.append(f"{task.priority.value}/{task.category.value}")
    if task.recurrence.value != "none":
        parts.append(f"repeats {task.recurrence.value}")
    return " | ".join(parts)


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    identity = state.identity.current_identity()
    if not state.remote.configured:
        sync = "local only (remote store not configured)"
    elif identity is None:
        sync = "signed out (local only)"
    else:
        live = "live" if state.coordinator.subscribed else "not subscribed"
        sync = f"signed in as {identity.email or identity.account_id} ({live})"
    active, completed = split_completed(state.coordinator.tasks)
    return (
        "Status:\n"
        f"  Sync: {sync}\n"
        f"  Tasks: {len(active)} active, {len(completed)} completed\n"
        f"  Sort: {state.preferences.sort_by.value}\n"
        f"  Theme: {'dark' if state.preferences.dark_mode else 'light'}"
    )


def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list                 -> all tasks
    /list work            -> one category
    /list work milk       -> category + search
    /list milk            -> search only
    """
    category: Category | None = None
    words = list(args)
    if words and words[0].strip() and words[0].lower() != "all":
        with contextlib.suppress(TaskValidationError):
            category = Category.parse(words[0])
            words = words[1:]
    elif words:
        words = words[1:]

    tasks = filter_tasks(state.coordinator.tasks, category=category, query=" ".join(words))
    active, completed = split_completed(tasks)
    order = state.preferences.sort_by
    limit = max(1, int(getattr(state.settings, "list_limit", 50)))

    if not active and not completed:
        if words:
            return "No tasks match your search."
        if category is not None:
            return "No tasks in this category."
        return "No tasks yet. Use /add to create one."

    lines = [f"Active ({len(active)}):"]
    lines.extend(format_task(t) for t in sort_tasks(active, order)[:limit])
    if completed:
        lines.append(f"Completed ({len(completed)}):")
        lines.extend(format_task(t) for t in sort_tasks(completed, order)[:limit])
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str]) -> str:
    """/add Buy milk --due 2025-03-15 --priority high --category shopping --repeat weekly --note "2 liters" """
    words, flags = parse_flags(args)
    title = flags.pop("title", " ".join(words))
    draft = TaskDraft.build(title=title, **flags)
    task = await state.coordinator.add(draft)
    return f"Task added: {format_task(task)}"


async def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <id> [--title ...] [--due ...] [--priority ...] ... (use --due "" to clear)"""
    if not args:
        return "Usage: /edit <id> --title ... --due YYYY-MM-DD --priority ... --category ... --repeat ... --note ..."
    found = resolve_task(state, args[0])
    if isinstance(found, str):
        return found
    words, flags = parse_flags(args[1:])
    if words:
        flags.setdefault("title", " ".join(words))
    if not flags:
        return "Nothing to change."

    current = TaskDraft.from_task(found)
    draft = TaskDraft.build(
        id=found.id,
        title=flags.get("title", current.title),
        description=flags.get("description", current.description),
        due_date=flags.get("due_date", current.due_date),
        priority=flags.get("priority", current.priority),
        category=flags.get("category", current.category),
        recurrence=flags.get("recurrence", current.recurrence),
    )
    updated = await state.coordinator.edit(draft)
    if updated is None:
        return "Task no longer exists."
    return f"Task updated: {format_task(updated)}"


async def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <id>"
    found = resolve_task(state, args[0])
    if isinstance(found, str):
        return found
    before = {t.id for t in state.coordinator.tasks}
    toggled = await state.coordinator.toggle(found.id)
    if toggled is None:
        return "Task no longer exists."
    if not toggled.completed:
        return f"Task reopened: {format_task(toggled)}"
    lines = [f"Task completed: {format_task(toggled)}"]
    for t in state.coordinator.tasks:
        if t.id not in before:
            lines.append(f"Next occurrence: {format_task(t)}")
    return "\n".join(lines)


async def cmd_delete(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /delete <id>"
    found = resolve_task(state, args[0])
    if isinstance(found, str):
        return found
    if state.last_deletion is not None:
        state.last_deletion.finalize()
    state.last_deletion = await state.coordinator.delete(found.id)
    window = getattr(state.settings, "undo_window_seconds", 3.5)
    return f"Task deleted. Use /undo within {window:g}s to restore it."


async def cmd_undo(state: AppState, args: list[str]) -> str:
    pending = state.last_deletion
    if pending is None or not await pending.undo():
        return "Nothing to undo."
    state.last_deletion = None
    return f"Task restored: {format_task(pending.task)}"


def cmd_sort(state: AppState, args: list[str]) -> str:
    if not args:
        options = ", ".join(o.value for o in SortOrder)
        return f"Sorting by {state.preferences.sort_by.value}. Options: {options}."
    if args[0] not in {o.value for o in SortOrder}:
        return f"Unknown sort order {args[0]!r}."
    state.preferences.sort_by = args[0]
    return f"Sorting by {state.preferences.sort_by.value}."


def cmd_theme(state: AppState, args: list[str]) -> str:
    if not args:
        state.preferences.dark_mode = not state.preferences.dark_mode
    elif args[0].lower() in ("dark", "on"):
        state.preferences.dark_mode = True
    elif args[0].lower() in ("light", "off"):
        state.preferences.dark_mode = False
    else:
        return "Usage: /theme [dark|light]"
    return f"Theme: {'dark' if state.preferences.dark_mode else 'light'}."


async def _auth(state: AppState, args: list[str], emit: CommandEmitter | None, *, sign_up: bool) -> str:
    if len(args) != 2:
        return f"Usage: /{'signup' if sign_up else 'signin'} <email> <password>"
    if emit:
        with contextlib.suppress(Exception):
            emit("Contacting the sign-in server...")
    email, password = args
    if sign_up:
        result = await state.identity.sign_up(email, password)
    else:
        result = await state.identity.sign_in(email, password)
    if not result.ok:
        return f"Sign-{'up' if sign_up else 'in'} failed: {result.error}"
    if result.identity is None:
        return "Account created. Check your e-mail to confirm it, then /signin."
    return f"Signed in as {result.identity.email or result.identity.account_id}. {len(state.coordinator.tasks)} tasks synced."


async def cmd_signup(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return await _auth(state, args, emit, sign_up=True)


async def cmd_signin(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return await _auth(state, args, emit, sign_up=False)


async def cmd_signout(state: AppState, args: list[str]) -> str:
    result = await state.identity.sign_out()
    if not result.ok:
        return f"Sign-out failed: {result.error}"
    return "Signed out. Tasks stay available on this device."


async def cmd_sync(state: AppState, args: list[str]) -> str:
    tasks = await state.coordinator.refresh()
    return f"Synced: {len(tasks)} tasks."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show sync status and preferences.")
registry.register("list", cmd_list, help_text="List tasks: /list [category] [search].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <title> [--due --priority --category --repeat --note].")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <id> [--title --due ...].")
registry.register("done", cmd_done, help_text="Toggle completion: /done <id>.", aliases=["toggle"])
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("undo", cmd_undo, help_text="Restore the last deleted task.")
registry.register("sort", cmd_sort, help_text="Sort order: /sort dueDate | priority | created.")
registry.register("theme", cmd_theme, help_text="Theme: /theme [dark|light].")
registry.register("signup", cmd_signup, help_text="Create an account: /signup <email> <password>.")
registry.register("signin", cmd_signin, help_text="Sign in and sync: /signin <email> <password>.", aliases=["login"])
registry.register("signout", cmd_signout, help_text="Sign out (tasks stay local).", aliases=["logout"])
registry.register("sync", cmd_sync, help_text="Re-fetch tasks from the account.")
