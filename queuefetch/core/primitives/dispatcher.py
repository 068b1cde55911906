"""
Dispatcher: drains a growable fetch queue with a dynamic worker pool.

Workers are asyncio tasks sharing one event loop. Each worker pops a task,
fetches it, hands the result to the completion callback and loops until it
finds the queue empty. The callback may push new tasks onto the queue while
the run is in progress; the pool grows to pick them up.

Popping, live-set bookkeeping and scaling never await, so they are atomic
with respect to each other. The only suspension point is the HTTP call.
"""

import asyncio
import itertools
import json
import logging
from collections import deque
from collections.abc import Callable, MutableSequence
from dataclasses import dataclass
from typing import Any

from queuefetch.core.exceptions import ConfigurationError, FetchError
from queuefetch.core.primitives.fetcher import Fetcher, FetchTask, Task

logger = logging.getLogger(__name__)

TaskQueue = MutableSequence[Task]
CompletionCallback = Callable[[Task, Any, Any], Any]
DebugSink = Callable[[str, str], Any]


@dataclass
class DispatcherConfig:
    """Configuration for Dispatcher."""
    max_workers: int = 25
    check_result: bool = True
    debug: DebugSink | None = None


@dataclass
class DispatchStats:
    """Statistics from a dispatcher run."""
    tasks_fetched: int = 0
    tasks_delivered: int = 0
    tasks_failed: int = 0
    tasks_filtered: int = 0
    workers_started: int = 0
    peak_workers: int = 0


def is_empty_result(result: Any) -> bool:
    """
    True for results the check_result filter drops.

    None, empty strings/bytes, False and zero are empty. Empty JSON objects
    and arrays are data and pass.
    """
    if isinstance(result, (dict, list)):
        return False
    return not result


def pop_task(queue: TaskQueue) -> Task | None:
    """Remove and return the head of the queue, or None if it is empty."""
    if not queue:
        return None
    if isinstance(queue, deque):
        return queue.popleft()
    return queue.pop(0)


class _Run:
    """State of one dispatcher run: live workers, target size, completion."""

    def __init__(
        self,
        dispatcher: "Dispatcher",
        queue: TaskQueue,
        on_complete: CompletionCallback,
    ):
        self.dispatcher = dispatcher
        self.queue = queue
        self.on_complete = on_complete
        self.target = min(dispatcher.config.max_workers, len(queue))
        self.live: set[int] = set()
        self.tasks: set[asyncio.Task] = set()
        self.stats = DispatchStats()
        self.done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._ids = itertools.count(1)

    def spawn(self) -> None:
        """Launch workers until the live set reaches the target."""
        while len(self.live) < self.target:
            worker_id = next(self._ids)
            self.live.add(worker_id)
            self.stats.workers_started += 1
            self.stats.peak_workers = max(self.stats.peak_workers, len(self.live))

            task = asyncio.create_task(
                self._work(worker_id), name=f"queuefetch-worker-{worker_id}"
            )
            self.tasks.add(task)
            task.add_done_callback(self.tasks.discard)

    def adjust(self) -> None:
        """Grow the pool if the queue outgrew it."""
        max_workers = self.dispatcher.config.max_workers
        queued = len(self.queue)

        if queued > len(self.live) and len(self.live) < max_workers:
            wanted = min(max_workers, queued)
            if wanted > self.target:
                logger.debug(f"Scaling workers {self.target} -> {wanted} ({queued} queued)")
                self.target = wanted
                self.spawn()

    def retire(self, worker_id: int) -> None:
        self.live.discard(worker_id)
        if not self.live and not self.done.done():
            self.done.set_result(None)

    def fail(self, worker_id: int, error: BaseException) -> None:
        self.live.discard(worker_id)
        if not self.done.done():
            self.done.set_exception(error)

    async def _work(self, worker_id: int) -> None:
        try:
            while (task := pop_task(self.queue)) is not None:
                result, headers = await self.dispatcher._fetch(task)
                self.stats.tasks_fetched += 1

                if self.dispatcher.config.check_result and is_empty_result(result):
                    if headers is not None:
                        self.stats.tasks_filtered += 1
                    else:
                        self.stats.tasks_failed += 1
                    continue

                if headers is None:
                    self.stats.tasks_failed += 1
                self.on_complete(task, result, headers)
                self.stats.tasks_delivered += 1
                self.adjust()
        except asyncio.CancelledError:
            self.live.discard(worker_id)
            raise
        except Exception as e:
            self.fail(worker_id, e)
            return

        self.retire(worker_id)

    async def cancel(self) -> None:
        pending = [task for task in self.tasks if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


class Dispatcher:
    """
    Runs a pool of up to ``max_workers`` workers against a task queue.

    Usage:
        dispatcher = Dispatcher().set_max_worker(5).set_check_result(False)
        queue = ["https://example.com/a", "https://example.com/b"]

        def on_complete(task, result, headers):
            print(task, result)

        stats = await dispatcher.run(queue, on_complete)

    Callback errors are not caught by the Dispatcher: they propagate out of
    run() and the remaining workers are cancelled.
    """

    def __init__(
        self,
        config: DispatcherConfig | None = None,
        fetcher: Fetcher | None = None,
    ):
        self.config = config or DispatcherConfig()
        self.fetcher = fetcher or Fetcher()
        _validate_max_workers(self.config.max_workers)

    def get_max_worker(self) -> int:
        return self.config.max_workers

    def set_max_worker(self, max_workers: int) -> "Dispatcher":
        _validate_max_workers(max_workers)
        self.config.max_workers = max_workers
        return self

    def get_check_result(self) -> bool:
        return self.config.check_result

    def set_check_result(self, enabled: bool) -> "Dispatcher":
        self.config.check_result = bool(enabled)
        return self

    def set_debugger(self, debug: DebugSink | None) -> "Dispatcher":
        if debug is not None and not callable(debug):
            raise ConfigurationError(f"Debugger must be callable, got {type(debug).__name__}")
        self.config.debug = debug
        return self

    async def run(self, queue: TaskQueue, on_complete: CompletionCallback) -> DispatchStats:
        """
        Drain the queue, calling on_complete(task, result, headers) per task.

        Returns once the queue is empty and every worker has exited. With
        check_result enabled, failed fetches and empty results are dropped
        silently; they still count as processed.
        """
        if not queue:
            logger.debug("Queue is empty, nothing to fetch")
            return DispatchStats()

        run = _Run(self, queue, on_complete)
        logger.info(
            f"Starting dispatch of {len(queue)} tasks with "
            f"{run.target} of max {self.config.max_workers} workers"
        )

        async with self.fetcher:
            run.spawn()
            try:
                await run.done
            finally:
                await run.cancel()

        stats = run.stats
        logger.info(
            f"Dispatch complete: fetched={stats.tasks_fetched}, "
            f"delivered={stats.tasks_delivered}, failed={stats.tasks_failed}, "
            f"filtered={stats.tasks_filtered}, peak_workers={stats.peak_workers}"
        )
        return stats

    async def __call__(self, queue: TaskQueue, on_complete: CompletionCallback) -> DispatchStats:
        return await self.run(queue, on_complete)

    async def _fetch(self, task: Task) -> tuple[Any, Any]:
        """Fetch one task, returning (None, None) on failure."""
        fetch_task = FetchTask.from_task(task)

        if self.config.debug is not None:
            self.config.debug(fetch_task.url, json.dumps(dict(fetch_task.params), default=str))

        try:
            response = await self.fetcher.fetch(fetch_task)
        except FetchError as e:
            logger.error(f"Unable to fetch {fetch_task.url}: {e.message}!")
            return None, None

        return response.data, response.headers


def _validate_max_workers(max_workers: Any) -> None:
    if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
        raise ConfigurationError(f"max_workers must be an integer >= 1, got {max_workers!r}")
