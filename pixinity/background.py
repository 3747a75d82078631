"""Supervision for fire-and-forget asyncio tasks.

Notification inserts and outgoing mail are spawned from request handlers
and must never fail the request that triggered them. Failures are logged
here; tasks are tracked so they are not garbage collected mid-flight and
so shutdown (and tests) can wait for them.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from functools import partial
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

_background_tasks: Set[asyncio.Task[Any]] = set()


def spawn(coro: Awaitable[Any], *, name: Optional[str] = None) -> asyncio.Task[Any]:
    """Schedule ``coro`` and log (never raise) whatever it fails with."""
    task = asyncio.create_task(coro, name=name)  # type: ignore[arg-type]
    _background_tasks.add(task)

    def _finished(t: asyncio.Task[Any]) -> None:
        _background_tasks.discard(t)
        if t.cancelled():
            logger.debug("Background task %s cancelled", name or t)
            return
        exc = t.exception()
        if exc is not None:
            logger.error("Background task %s failed", name or t, exc_info=exc)

    task.add_done_callback(_finished)
    return task


async def run_sync(func: Callable[..., Any], *args: Any,
                   executor: Optional[Executor] = None, **kwargs: Any) -> Any:
    """Execute blocking code in the default executor and await the result."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, partial(func, *args, **kwargs))


async def drain(timeout: Optional[float] = None) -> None:
    """Wait for every task spawned so far, including ones they spawn."""
    while _background_tasks:
        pending = list(_background_tasks)
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        for t in done:
            _background_tasks.discard(t)
        if not_done:
            logger.warning("%d background task(s) still running after drain timeout", len(not_done))
            return


__all__ = ["spawn", "run_sync", "drain"]
