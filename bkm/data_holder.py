"""
Owner of the in-memory bookmark collection.

The data holder loads the collection at start, hands it out by reference to
readers, and accepts every write as a closure pushed through its
MutationQueue. After each applied change (or batch of changes) it persists a
snapshot through the Database.
"""
import asyncio
import logging
from typing import Any, Callable, Iterable, Optional

from bkm.clock import Clock, SystemClock
from bkm.db import Database
from bkm.entities import Bk, BkCollection, BookmarkNode, url_hash
from bkm.write_queue import MutationQueue

logger = logging.getLogger(__name__)


class BkDataHolder:
    """
    Store for the bookmark collection plus its persistence lifecycle.

    Args:
        database: Where snapshots are loaded from and saved to
        clock: Time source for persistence timestamps
        maxsize: Back-pressure limit of the mutation queue
        batch_saves: Persist once per batch of waiting mutations
        stop_timeout: Seconds ``stop()`` waits for the queue to drain
    """

    def __init__(
        self,
        database: Database,
        clock: Optional[Clock] = None,
        maxsize: int = 256,
        batch_saves: bool = True,
        stop_timeout: float = 30.0
    ):
        self._database = database
        self._clock = clock or SystemClock()
        self._collection: Optional[BkCollection] = None
        self._queue = MutationQueue(self._persist, maxsize=maxsize, batch_saves=batch_saves)
        self._stop_timeout = stop_timeout

    @property
    def collection(self) -> BkCollection:
        """The live collection. Read freely; write only through push_change."""
        if self._collection is None:
            raise RuntimeError("BkDataHolder has not been started")
        return self._collection

    @property
    def started(self) -> bool:
        return self._queue.running

    @property
    def pending(self) -> int:
        """Queued mutations the worker has not picked up yet."""
        return self._queue.pending

    async def start(self) -> None:
        """Load the persisted collection (or create an empty one) and start the queue."""
        if self._queue.running:
            logger.warning("BkDataHolder.start() called twice")
            return

        collection = await self._load()
        if collection is None:
            logger.info("No persisted collection found, starting empty")
            collection = BkCollection(created_time=self._clock.now())
        else:
            logger.info("Loaded collection with %d bookmarks (etag version %d)",
                        len(collection.bks), collection.etag_version)

        self._collection = collection
        self._queue.start()

    async def stop(self) -> None:
        """Apply and persist everything still queued, then stop the worker."""
        await self._queue.stop(timeout=self._stop_timeout)

    async def push_change(self, action: Callable[[], Any], name: str = "mutation") -> Any:
        """
        Queue a mutation of the collection.

        Args:
            action: Zero-argument callable; it runs on the queue worker with
                exclusive access to the collection
            name: Label for logging

        Returns:
            The action's return value, once it is applied and persisted
        """
        return await self._queue.push_change(action, name=name)

    async def save_now(self) -> None:
        """Persist the current state after everything already queued."""
        await self._queue.flush()

    async def append_bookmarks(self, nodes: Iterable[BookmarkNode]) -> int:
        """
        Track bookmarks reported by the bookmark source.

        New URLs get a fresh entry. Known URLs only have their title and
        url hash refreshed; tags, favicon and click data are kept.

        Returns:
            Number of newly tracked bookmarks
        """
        url_nodes = [node for root in nodes for node in root.iter_urls()]

        def append() -> int:
            bks = self.collection.bks
            created = 0
            for node in url_nodes:
                bk = bks.get(node.url)
                if bk is None:
                    bks[node.url] = Bk.create(node.url, title=node.title)
                    created += 1
                else:
                    bk.title = node.title
                    bk.url_hash = url_hash(node.url)
            logger.info("Appended %d bookmarks (%d new)", len(url_nodes), created)
            return created

        return await self.push_change(append, name="append_bookmarks")

    async def set_etag_version(self, value: int) -> None:
        def update() -> None:
            self.collection.etag_version = value
            logger.info("Etag version set to %d", value)

        await self.push_change(update, name="set_etag_version")

    async def restore(self) -> None:
        """Throw away in-memory changes and go back to the last persisted state."""
        persisted = await self._load()

        def reset() -> None:
            if persisted is None:
                self.collection.replace_with(BkCollection(created_time=self._clock.now()))
            else:
                self.collection.replace_with(persisted)
            logger.info("Collection restored (%d bookmarks)", len(self.collection.bks))

        await self.push_change(reset, name="restore")

    async def _load(self) -> Optional[BkCollection]:
        return await asyncio.to_thread(self._database.load_collection)

    async def _persist(self) -> None:
        """Save a snapshot of the collection; runs on the queue worker."""
        stamp = self._clock.now()
        snapshot = self.collection.snapshot()
        snapshot.last_update_time = stamp
        await asyncio.to_thread(self._database.save_collection, snapshot)
        self.collection.last_update_time = stamp
