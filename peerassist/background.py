"""Detached background work (emails, view counters).

Jobs run off the request path. Their failures go to the log and nowhere
else: a background job never fails or delays the request that queued it.
"""

import asyncio
from typing import Awaitable, Set

from .logging_config import get_logger

logger = get_logger("background")


class BackgroundDispatcher:
    """Runs fire-and-forget coroutines and logs their failures."""

    def __init__(self):
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, job: Awaitable[None], description: str) -> asyncio.Task:
        """Schedule ``job`` on the running loop without awaiting it."""
        task = asyncio.ensure_future(self._run(job, description))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(self, job: Awaitable[None], description: str) -> None:
        try:
            await job
            logger.debug(f"Background job done: {description}")
        except asyncio.CancelledError:
            logger.warning(f"Background job cancelled: {description}")
            raise
        except Exception:
            logger.exception(f"Background job failed: {description}")

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for queued jobs to finish (shutdown, tests)."""
        if not self._pending:
            return
        done, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning(f"Cancelled {len(not_done)} background job(s) still running at drain")
