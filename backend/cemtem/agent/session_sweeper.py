"""
Background sweeper for expired conversation sessions and quote drafts.

Runs in the same asyncio loop as FastAPI; started and stopped from the app
lifespan.
"""
import asyncio
import logging
from typing import Iterable, Optional

from cemtem.agent.session_store import SessionStore

logger = logging.getLogger(__name__)

_sweeper_task: Optional[asyncio.Task] = None


def sweep_all(stores: Iterable[SessionStore]) -> int:
    removed = 0
    for store in stores:
        try:
            removed += store.sweep_expired()
        except Exception as e:
            logger.error(f"[Sweeper] Failed to sweep {store.name}: {e}", exc_info=True)
    return removed


async def _sweeper_loop(stores: list, interval_seconds: int):
    logger.info(f"[Sweeper] Started. Interval: {interval_seconds}s")
    while True:
        await asyncio.sleep(interval_seconds)
        sweep_all(stores)


def start_session_sweeper(stores: Iterable[SessionStore], interval_seconds: int) -> None:
    """Start the sweeper task. Called from FastAPI lifespan."""
    global _sweeper_task
    if _sweeper_task and not _sweeper_task.done():
        return
    _sweeper_task = asyncio.create_task(_sweeper_loop(list(stores), interval_seconds))


def stop_session_sweeper() -> None:
    global _sweeper_task
    if _sweeper_task:
        _sweeper_task.cancel()
        _sweeper_task = None
        logger.info("[Sweeper] Stopped")
