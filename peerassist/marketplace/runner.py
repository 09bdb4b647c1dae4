"""Deadline-bounded execution of blocking store calls."""

import asyncio
from typing import Any, Callable, TypeVar

from ..errors import MarketplaceError, StoreError, StoreUnavailableError
from ..logging_config import get_logger

logger = get_logger("marketplace.store")

T = TypeVar("T")


class StoreRunner:
    """Runs storage methods off the event loop under a per-call deadline.

    Domain errors pass through unchanged. Any other driver failure is logged
    and surfaces as ``StoreError``; a missed deadline as
    ``StoreUnavailableError``.
    """

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds

    async def __call__(self, fn: Callable[..., T], *args: Any) -> T:
        name = getattr(fn, "__name__", repr(fn))
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout_seconds)
        except MarketplaceError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"Store call {name} exceeded {self.timeout_seconds}s deadline")
            raise StoreUnavailableError() from e
        except Exception as e:
            logger.error(f"Store call {name} failed: {type(e).__name__}: {e}")
            raise StoreError() from e
