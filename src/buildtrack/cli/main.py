# src/buildtrack/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, opens a session for the configured user
(if any), then runs the console REPL on an asyncio loop.
"""

from __future__ import annotations

import asyncio
import logging

from ..config import get_settings
from ..logging_setup import setup_logging
from .bootstrap import create_initial_state, shutdown, start_session
from .console import run_console_loop

logger = logging.getLogger(__name__)


async def _run(state) -> None:
    try:
        if state.user_id:
            try:
                await start_session(state, state.user_id)
            except Exception:
                logger.exception("Failed to open a session for user %s.", state.user_id)
        await run_console_loop(state)
    finally:
        await shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/buildtrack")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "buildtrack"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
