"""Fixed-size async worker pool with hard per-task timeouts.

The coordinator owns all shared state: the pending FIFO queue, the inbox that
workers post finished outcomes to, and the results list. Workers only pull
from the pending queue and post messages; they never touch the results.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")
S = TypeVar("S")


class _HardTimeout(Exception):
    """The pool deadline of a task expired."""


class WorkerState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"
    CRASHED = "crashed"


@dataclass
class _Message(Generic[T, R]):
    worker_id: int
    item: T
    outcome: R


class WorkerPool(Generic[T, R, S]):
    """Fixed-size pool of async workers, each owning one reusable session.

    Args:
        num_workers: Number of concurrent workers.
        task_timeout: Hard timeout in seconds for each task.
        session_factory: Returns an async context manager yielding the
            session handed to the task handler (e.g. a browser context).
        on_failure: Builds the outcome recorded for a failed task from the
            task item and a reason string.
        max_respawns: How many times a crashed worker is brought back.
    """

    def __init__(
        self,
        num_workers: int,
        task_timeout: float,
        session_factory: Callable[[], AbstractAsyncContextManager[S]],
        on_failure: Callable[[T, str], R],
        max_respawns: int = 2,
    ):
        if num_workers < 1:
            raise ValueError("num_workers must be at least 1")
        self.num_workers = num_workers
        self.task_timeout = task_timeout
        self.session_factory = session_factory
        self.on_failure = on_failure
        self.max_respawns = max_respawns
        self.states: dict[int, WorkerState] = {}
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        """Ask workers to finish their in-flight task and exit."""
        if not self._stopping.is_set():
            logger.warning("Stop requested: finishing in-flight tasks, cancelling the rest")
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    async def run(
        self,
        items: list[T],
        handler: Callable[[S, T], Awaitable[R]],
        on_result: Callable[[T, R], Any] | None = None,
    ) -> list[R]:
        """Run ``handler`` on every item. Returns one outcome per item, in completion order."""
        total = len(items)
        if total == 0:
            return []

        pending: asyncio.Queue[T] = asyncio.Queue()
        for item in items:
            pending.put_nowait(item)
        inbox: asyncio.Queue[_Message[T, R]] = asyncio.Queue()

        worker_count = min(self.num_workers, total)
        logger.info("Starting %d workers for %d tasks", worker_count, total)
        workers = [
            asyncio.create_task(self._worker(i, pending, inbox, handler), name=f"worker-{i}")
            for i in range(worker_count)
        ]
        supervisor = asyncio.create_task(self._supervise(workers, pending, inbox))

        results: list[R] = []
        start = time.monotonic()
        try:
            while len(results) < total:
                message = await inbox.get()
                results.append(message.outcome)
                logger.info("[%d/%d] finished (worker %d, %.1fs elapsed)",
                            len(results), total, message.worker_id, time.monotonic() - start)
                if on_result is not None:
                    on_result(message.item, message.outcome)
            await supervisor
        finally:
            for w in workers:
                if not w.done():
                    w.cancel()
            if not supervisor.done():
                supervisor.cancel()
        return results

    async def _supervise(
        self,
        workers: list[asyncio.Task],
        pending: asyncio.Queue,
        inbox: asyncio.Queue,
    ) -> None:
        """Wait for every worker, then fail whatever is still queued."""
        await asyncio.gather(*workers, return_exceptions=True)
        reason = "cancelled" if self.stopping else "no worker available"
        while not pending.empty():
            item = pending.get_nowait()
            await inbox.put(_Message(-1, item, self.on_failure(item, reason)))

    async def _worker(
        self,
        worker_id: int,
        pending: asyncio.Queue,
        inbox: asyncio.Queue,
        handler: Callable[[S, T], Awaitable[R]],
    ) -> None:
        respawns = 0
        self.states[worker_id] = WorkerState.IDLE
        while not pending.empty() and not self.stopping:
            try:
                async with self.session_factory() as session:
                    await self._drain(worker_id, session, pending, inbox, handler)
            except Exception as e:
                self.states[worker_id] = WorkerState.CRASHED
                respawns += 1
                if respawns > self.max_respawns:
                    logger.error("Worker %d crashed %d times, giving up: %s", worker_id, respawns, e)
                    return
                logger.warning("Worker %d crashed (%s), respawning (%d/%d)",
                               worker_id, e, respawns, self.max_respawns)
                self.states[worker_id] = WorkerState.IDLE
        self.states[worker_id] = WorkerState.IDLE
        logger.debug("Worker %d exiting", worker_id)

    async def _drain(
        self,
        worker_id: int,
        session: S,
        pending: asyncio.Queue,
        inbox: asyncio.Queue,
        handler: Callable[[S, T], Awaitable[R]],
    ) -> None:
        """Pull tasks until the queue is empty, or until a task fails and the session must be recycled."""
        while not self.stopping:
            try:
                item = pending.get_nowait()
            except asyncio.QueueEmpty:
                return

            self.states[worker_id] = WorkerState.BUSY
            try:
                outcome = await self._run_with_timeout(handler(session, item))
            except _HardTimeout:
                logger.error("Worker %d: task timed out after %.0fs: %s", worker_id, self.task_timeout, item)
                await inbox.put(_Message(worker_id, item,
                                         self.on_failure(item, f"timed out after {self.task_timeout:.0f}s")))
                self.states[worker_id] = WorkerState.CRASHED
                return
            except Exception as e:
                logger.error("Worker %d: task failed: %s: %s", worker_id, item, e)
                await inbox.put(_Message(worker_id, item, self.on_failure(item, str(e) or type(e).__name__)))
                self.states[worker_id] = WorkerState.CRASHED
                return

            await inbox.put(_Message(worker_id, item, outcome))
            self.states[worker_id] = WorkerState.IDLE

    async def _run_with_timeout(self, coro: Awaitable[R]) -> R:
        """Await ``coro`` for at most ``task_timeout`` seconds.

        Raises ``_HardTimeout`` only when the pool's own deadline expired. A
        ``TimeoutError`` raised by the task itself propagates unchanged.
        """
        task = asyncio.ensure_future(coro)
        try:
            done, _ = await asyncio.wait({task}, timeout=self.task_timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise _HardTimeout()
