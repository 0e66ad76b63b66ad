"""
Bookmark service for BKM.

BkManager is the public face of the package: it validates input, then hands
every write to the data holder as a queued closure. Reads go straight to the
live collection and may observe a state that is about to change.

Unknown URLs are never an error; the bookmark may have been removed by the
browser in the meantime, so every mutation on one is a silent no-op.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from bkm.clock import Clock, SystemClock
from bkm.cloud import CloudReconciler
from bkm.data_holder import BkDataHolder
from bkm.entities import Bk, BookmarkNode, CloudBkCollection

logger = logging.getLogger(__name__)


class BkManager:
    """
    Tag, favicon and click bookkeeping for tracked bookmarks.

    Args:
        data_holder: Owner of the collection and its mutation queue
        clock: Time source for click timestamps
        reconciler: Cloud reconciler (one over ``data_holder`` by default)

    Example:
        >>> manager = BkManager(BkDataHolder(Database(path="bkm.db")))
        >>> await manager.init()
        >>> await manager.add_tag("https://example.com", "demo")
    """

    def __init__(
        self,
        data_holder: BkDataHolder,
        clock: Optional[Clock] = None,
        reconciler: Optional[CloudReconciler] = None
    ):
        self._data_holder = data_holder
        self._clock = clock or SystemClock()
        self._reconciler = reconciler or CloudReconciler(data_holder)

    async def init(self) -> None:
        await self._data_holder.start()

    async def close(self) -> None:
        await self._data_holder.stop()

    async def restore(self) -> None:
        await self._data_holder.restore()

    # === Tags ===

    async def add_tag(self, url: str, tag: str) -> bool:
        """
        Attach a tag to a bookmark.

        Args:
            url: Bookmark URL
            tag: Tag to add; surrounding whitespace is dropped

        Returns:
            False if the tag is blank, the URL is unknown or the bookmark
            already has the tag (also when the bookmark is gone by the time
            the change runs); True once the tag is added and persisted
        """
        if not tag or not tag.strip():
            return False

        bk = self.get(url)
        if bk is None:
            return False

        key = tag.strip()
        if bk.has_tag(key):
            return False

        def add() -> bool:
            # Look up again: a queued restore may have replaced the object
            current = self.get(url)
            if current is None:
                return False
            if self._data_holder.collection.ensure_tag(key):
                logger.info("A new tag %s added to the collection", key)
            # Another queued add may have won the race
            if current.has_tag(key):
                return True
            if current.tags is None:
                current.tags = []
            current.tags.append(key)
            logger.info("Tag %s added for %s", key, url)
            return True

        return await self._data_holder.push_change(add, name="add_tag")

    async def remove_tag(self, url: str, tag: str) -> None:
        """Detach a tag from a bookmark. The tag stays in the registry."""
        bk = self.get(url)
        if bk is None or not bk.has_tag(tag):
            return

        def remove() -> None:
            current = self.get(url)
            if current is not None and current.has_tag(tag):
                current.tags.remove(tag)
                logger.info("Tag %s removed from %s", tag, url)

        await self._data_holder.push_change(remove, name="remove_tag")

    async def update_tags(self, url: str, tags: Iterable[str]) -> None:
        """
        Replace the whole tag list of a bookmark.

        The list is taken as given: no trimming, duplicates kept. The
        replacement is queued like any other mutation and then flushed.
        """
        bk = self.get(url)
        if bk is None:
            return

        tag_list = list(tags)

        def replace() -> None:
            current = self.get(url)
            if current is None:
                return
            for tag in tag_list:
                if self._data_holder.collection.ensure_tag(tag):
                    logger.info("A new tag %s added to the collection", tag)
            current.tags = list(tag_list)
            logger.info("Tags %s set for %s", tag_list, url)

        await self._data_holder.push_change(replace, name="update_tags")
        await self._data_holder.save_now()

    def get_tags(self) -> List[str]:
        """Every tag name ever used, in the order first seen."""
        return list(self._data_holder.collection.tags)

    # === Favicons and clicks ===

    async def update_fav_icon_urls(self, urls: Dict[str, str]) -> None:
        """
        Record favicon URLs reported by the browser.

        Args:
            urls: Mapping of bookmark URL to favicon URL
        """
        for url, fav_icon_url in urls.items():
            bk = self.get(url)
            if bk is None or bk.fav_icon_url == fav_icon_url:
                continue
            await self._data_holder.push_change(
                self._set_fav_icon(url, fav_icon_url),
                name="update_fav_icon_url"
            )

    def _set_fav_icon(self, url: str, fav_icon_url: str):
        def update() -> None:
            current = self.get(url)
            if current is None:
                return
            current.fav_icon_url = fav_icon_url
            logger.info("FavIconUrl %s updated for %s", fav_icon_url, url)

        return update

    async def add_click(self, url: str, more_count: int = 1) -> None:
        """Count clicks on a bookmark and remember when the last one happened."""
        bk = self.get(url)
        if bk is None:
            return

        clicked_at: datetime = self._clock.now()

        def click() -> None:
            current = self.get(url)
            if current is None:
                return
            current.clicked_count += more_count
            current.last_click_time = clicked_at

        await self._data_holder.push_change(click, name="add_click")

    register_click = add_click

    # === Bookmark source ===

    async def append_bookmarks(self, nodes: Iterable[BookmarkNode]) -> int:
        return await self._data_holder.append_bookmarks(nodes)

    # === Reads ===

    def get(self, url: str) -> Optional[Bk]:
        return self._data_holder.collection.bks.get(url)

    def list_bookmarks(self) -> List[Bk]:
        return list(self._data_holder.collection.bks.values())

    def get_etag_version(self) -> int:
        return self._data_holder.collection.etag_version

    # === Cloud ===

    async def load_cloud_collection(self, cloud: CloudBkCollection) -> int:
        return await self._reconciler.load_cloud_collection(cloud)

    def get_cloud_collection(self) -> CloudBkCollection:
        return self._reconciler.export_cloud_collection()
