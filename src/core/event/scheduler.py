"""
Settle-all scheduling helpers for hostbus.

Purpose
-------
Provides the two concurrency primitives shared by the dispatcher, the staged
loader and the lifecycle controller:

- `settle_all`: launch every awaitable, wait for all of them, and collect a
  `SettledResult` per awaitable without ever failing fast.
- `BackgroundTasks`: fire-and-forget task spawning with strong references so
  tasks are not garbage collected mid-flight, plus a way to await whatever is
  still running.

Execution Model
---------------
Everything runs on one asyncio event loop. "Concurrent" work is interleaved
at suspension points; nothing here uses threads. No timeouts are imposed:
a hung awaitable only blocks the join that waits on it.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Awaitable, Coroutine, Iterable, List, Optional

from src.core.event.types import SettledResult


async def settle_all(awaitables: Iterable[Awaitable[Any]]) -> List[SettledResult]:
    """
    Await every awaitable and return their outcomes in input order.

    Mirrors a "settle all" join: failures are captured as rejected results
    rather than raised, and no awaitable is cancelled because a sibling failed.

    Examples
    --------
    >>> results = await settle_all([ok(), boom()])
    >>> [r.status for r in results]
    ['fulfilled', 'rejected']
    """
    futures = [asyncio.ensure_future(aw) for aw in awaitables]
    if not futures:
        return []

    outcomes = await asyncio.gather(*futures, return_exceptions=True)

    results: List[SettledResult] = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            results.append(SettledResult.rejected(outcome))
        else:
            results.append(SettledResult.fulfilled(outcome))
    return results


class BackgroundTasks:
    """
    Tracks fire-and-forget tasks spawned by a component.

    When an event loop is running the coroutine becomes a tracked task; when
    none is running (a synchronous caller before or after the loop) it is run
    to completion with `asyncio.run` so the work is never silently dropped.

    Examples
    --------
    >>> tasks = BackgroundTasks(logger, owner="loader")
    >>> tasks.spawn(loader.load_one("plugins.audit"), name="load:plugins.audit")
    >>> await tasks.wait_idle()
    """

    def __init__(self, logger: Logger, *, owner: str) -> None:
        self._logger = logger
        self._owner = owner
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        name: Optional[str] = None,
    ) -> Optional[asyncio.Task[Any]]:
        """
        Schedule `coro` without waiting for it.

        Returns
        -------
        Optional[asyncio.Task]:
            The tracked task, or None if the coroutine was run synchronously.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug(
                "No running event loop; running background work synchronously",
                extra={"owner": self._owner, "task_name": name},
            )
            asyncio.run(coro)
            return None

        task = loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self._logger.warning(
                "Background task cancelled before completion",
                extra={"owner": self._owner, "task_name": task.get_name()},
            )
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "Background task failed",
                extra={
                    "owner": self._owner,
                    "task_name": task.get_name(),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=exc,
            )

    async def wait_idle(self) -> None:
        """Wait until every tracked task (including ones spawned meanwhile) finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)


def is_awaitable(value: Any) -> bool:
    return inspect.isawaitable(value)
