"""Serialized execution of sync runs and the timeout race combinator."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from musicsync.domain.exceptions import SyncTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _consume_outcome(task: "asyncio.Task[Any]") -> None:
    # Mark the exception as retrieved; the caller that awaited us already saw it, or went away.
    if not task.cancelled():
        task.exception()


# Hey future me - this is THE guarantee that only one sync touches storage at a time!
# Every job is chained behind the previous one: it first waits for the prior task to finish
# (success, error, whatever - outcome ignored) and only then runs. Nothing is dropped or merged:
# three sync_all() calls in a row means three runs, one after another.
# The shield matters: if the HTTP request that triggered a sync disconnects, its await gets
# cancelled, but the run itself keeps going. A sync has no cancel button.
class SingleFlightQueue:
    """Runs submitted jobs strictly one after another."""

    def __init__(self) -> None:
        self._tail: asyncio.Task[Any] | None = None

    @property
    def is_busy(self) -> bool:
        return self._tail is not None and not self._tail.done()

    async def run(self, job: Callable[[], Awaitable[T]], name: str | None = None) -> T:
        """Run a job after every previously submitted job has finished.

        Returns the job's result and re-raises its exception.
        """
        previous = self._tail

        async def runner() -> T:
            if previous is not None and not previous.done():
                logger.debug(f"Run queue: {name or 'job'} waiting for previous run")
                await asyncio.wait([previous])
            return await job()

        task: asyncio.Task[T] = asyncio.create_task(runner(), name=name)
        task.add_done_callback(_consume_outcome)
        self._tail = task
        return await asyncio.shield(task)

    async def join(self) -> None:
        """Wait until the most recently submitted job has finished."""
        tail = self._tail
        if tail is not None and not tail.done():
            await asyncio.wait([tail])


async def first_completed(first: Awaitable[T], second: Awaitable[T]) -> T:
    """Run two awaitables concurrently and return whichever finishes first.

    The loser is cancelled and awaited before returning. The winner's exception
    propagates. If both finish in the same tick, ``first`` wins.
    """
    tasks: list[asyncio.Future[T]] = [asyncio.ensure_future(first), asyncio.ensure_future(second)]
    try:
        done, _pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    winner = next(task for task in tasks if task in done)
    return winner.result()


async def race_with_timeout(operation: Awaitable[T], timeout_seconds: float) -> T:
    """Race an operation against a timer.

    Raises:
        SyncTimeoutError: If the timer fires first
    """

    async def timer() -> T:
        await asyncio.sleep(timeout_seconds)
        raise SyncTimeoutError(timeout_seconds=timeout_seconds)

    return await first_completed(operation, timer())
