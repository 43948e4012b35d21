# src/taskflow/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import shlex
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def run_console_loop(state: AppState) -> None:
    """
    Interactive REPL.

    input() runs in a worker thread so push updates and undo timers keep
    running on the event loop while the prompt waits.
    """
    logger.info("Console connector started (remote=%s).", state.remote.configured)
    _print_ts("Type a command. Use /help for commands, /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate feedback for slow operations (sign-in, initial sync).
        _print_ts(text)

    while True:
        try:
            line = (await asyncio.to_thread(input, "taskflow> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not line.startswith("/"):
            # Bare text is a quick add.
            line = "/add " + shlex.quote(line)

        try:
            reply = await command_registry.handle(state, line, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is not None:
            _print_ts(reply)

    logger.info("Console connector finished.")
