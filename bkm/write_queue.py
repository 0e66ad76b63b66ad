"""Single-consumer queue that serializes every change to the collection.

Mutations are plain zero-argument callables.  A dedicated asyncio worker
task takes them off a FIFO one at a time, applies them, runs the persist
callback for the resulting state, and only then resolves the future that
the submitter is awaiting.  Nothing else writes to the collection, so no
further locking is needed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# Sentinel used to signal the worker to shut down.
_SENTINEL = None


@dataclass
class _Request:
    """One queued unit of work together with its completion signal."""

    action: Optional[Callable[[], Any]]
    name: str
    future: asyncio.Future = field(repr=False)

    @property
    def is_flush(self) -> bool:
        return self.action is None


class MutationQueue:
    """Applies mutations strictly one at a time, in submission order.

    Usage::

        queue = MutationQueue(persist=save_snapshot)
        queue.start()

        # From any coroutine -- returns once applied and persisted:
        await queue.push_change(lambda: bk.tags.append("python"), name="add_tag")

        # Force a persistence pass behind everything already queued:
        await queue.flush()

        await queue.stop(timeout=30.0)

    Args:
        persist: Async callable run after each mutation (or batch of
                 mutations) has been applied.
        maxsize: Maximum number of pending requests before ``submit``
                 blocks.
        batch_saves: When True, requests already waiting when the worker
                     wakes up are applied together and persisted once.
    """

    def __init__(
        self,
        persist: Callable[[], Awaitable[None]],
        maxsize: int = 256,
        batch_saves: bool = True,
    ) -> None:
        self._persist = persist
        self._batch_saves = batch_saves
        self._queue: asyncio.Queue[_Request | None] = asyncio.Queue(maxsize=maxsize)
        self._worker_task: asyncio.Task[None] | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._worker_task is not None

    @property
    def pending(self) -> int:
        """Requests not yet taken by the worker."""
        return self._queue.qsize()

    def start(self) -> None:
        """Spawn the background worker coroutine.

        Must be called once after the event loop is running.
        """
        if self._worker_task is not None:
            logger.warning("MutationQueue.start() called but worker is already running")
            return
        self._closed = False
        self._worker_task = asyncio.create_task(self._worker(), name="bkm-mutation-queue")
        logger.info("MutationQueue worker started (maxsize=%d, batch_saves=%s)",
                    self._queue.maxsize, self._batch_saves)

    async def stop(self, timeout: float = 30.0) -> None:
        """Signal shutdown and wait for the worker to drain remaining requests.

        Args:
            timeout: Maximum seconds to wait before the worker is cancelled.
                     Futures of requests that never ran are cancelled too.
        """
        if self._worker_task is None:
            return

        self._closed = True

        try:
            await asyncio.wait_for(self._shutdown(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("MutationQueue worker did not finish within %.1fs; cancelling", timeout)
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
        finally:
            # Submitters blocked on a full queue may have landed after the drain
            self._cancel_pending()
            self._worker_task = None
            logger.info("MutationQueue stopped")

    async def _shutdown(self) -> None:
        await self._queue.put(_SENTINEL)
        await self._worker_task

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(self, action: Optional[Callable[[], Any]], *, name: str = "mutation") -> asyncio.Future:
        """Enqueue a request and return its future without waiting for it.

        Args:
            action: Zero-argument callable that mutates the collection, or
                    None for a pure persistence request.
            name: Human-readable label for logging.

        Raises:
            RuntimeError: If the queue is not running.
        """
        if self._worker_task is None or self._closed:
            raise RuntimeError("MutationQueue is not running")

        future = asyncio.get_running_loop().create_future()
        await self._queue.put(_Request(action=action, name=name, future=future))
        if self._closed and (self._worker_task is None or self._worker_task.done()):
            # Blocked in put() while the queue shut down; nobody will run it
            self._cancel_pending()
            return future
        logger.debug("Enqueued %s (pending=%d)", name, self._queue.qsize())
        return future

    async def push_change(self, action: Callable[[], Any], *, name: str = "mutation") -> Any:
        """Enqueue a mutation and wait until it is applied and persisted.

        Returns:
            Whatever the action returned.
        """
        future = await self.submit(action, name=name)
        return await future

    async def flush(self) -> None:
        """Run a persistence pass after everything queued so far."""
        future = await self.submit(None, name="flush")
        await future

    # ------------------------------------------------------------------
    # Internal worker
    # ------------------------------------------------------------------

    async def _worker(self) -> None:
        """Process queued requests until the sentinel is received."""
        logger.debug("MutationQueue worker loop started")
        while True:
            item = await self._queue.get()
            if item is _SENTINEL:
                self._queue.task_done()
                await self._drain()
                break

            batch = [item]
            stop_after = False
            if self._batch_saves:
                while not self._queue.empty():
                    extra = self._queue.get_nowait()
                    if extra is _SENTINEL:
                        self._queue.task_done()
                        stop_after = True
                        break
                    batch.append(extra)

            await self._process_batch(batch)
            if stop_after:
                await self._drain()
                break
        logger.debug("MutationQueue worker loop exited")

    async def _drain(self) -> None:
        """Process all requests remaining in the queue after the sentinel.

        Taking items frees slots for submitters blocked on a full queue, so
        keep going until a pass finds nothing new.
        """
        while not self._queue.empty():
            batch: List[_Request] = []
            while not self._queue.empty():
                item = self._queue.get_nowait()
                if item is _SENTINEL:
                    self._queue.task_done()
                    continue
                batch.append(item)
            if batch:
                logger.info("Draining %d remaining requests during shutdown", len(batch))
                await self._process_batch(batch)

    async def _process_batch(self, batch: List[_Request]) -> None:
        """Apply each request in order, persist once, then resolve futures."""
        if not self._batch_saves and len(batch) > 1:
            for item in batch:
                await self._process_batch([item])
            return

        outcomes = [self._apply(item) for item in batch]

        try:
            await self._persist()
        except asyncio.CancelledError:
            for item in batch:
                if not item.future.done():
                    item.future.cancel()
                self._queue.task_done()
            raise
        except Exception:
            # The in-memory change stays applied; the next pass writes it again.
            logger.exception("Persisting after %s failed", ", ".join(item.name for item in batch))

        for item, (ok, value) in zip(batch, outcomes):
            if not item.future.done():
                if ok:
                    item.future.set_result(value)
                else:
                    item.future.set_exception(value)
            self._queue.task_done()

    def _apply(self, item: _Request) -> tuple:
        """Run one action, capturing its result or exception."""
        if item.is_flush:
            return True, None
        try:
            return True, item.action()
        except Exception as e:
            logger.exception("MutationQueue: %s failed", item.name)
            return False, e

    def _cancel_pending(self) -> None:
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _SENTINEL and not item.future.done():
                item.future.cancel()
            self._queue.task_done()
