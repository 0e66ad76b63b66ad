"""
Reconciliation between the local collection and a cloud snapshot.

The cloud side only knows url hashes and tag lists. Loading a snapshot
overwrites the tags of every local bookmark whose hash it contains (cloud
wins, no three-way merge) and records the snapshot's etag version.
"""
import json
import logging
from pathlib import Path
from typing import Dict, List, Union

from bkm.data_holder import BkDataHolder
from bkm.entities import Bk, CloudBk, CloudBkCollection

logger = logging.getLogger(__name__)


class CloudReconciler:
    """
    Merge cloud snapshots into, and export them from, the local collection.

    Args:
        data_holder: Holder of the local collection
    """

    def __init__(self, data_holder: BkDataHolder):
        self._data_holder = data_holder

    async def load_cloud_collection(self, cloud: CloudBkCollection) -> int:
        """
        Apply a cloud snapshot to the local collection.

        Entries whose hash has no local bookmark are ignored; no bookmark is
        ever created from cloud data. The etag version is taken over even when
        nothing matched.

        Returns:
            Number of local bookmarks whose tags were replaced
        """
        by_hash: Dict[str, Bk] = {bk.url_hash: bk for bk in self._data_holder.collection.bks.values()}

        matched = 0
        for key, cloud_bk in cloud.bks.items():
            local_bk = by_hash.get(key)
            if local_bk is None:
                continue
            matched += 1
            await self._data_holder.push_change(
                self._replace_tags(local_bk.url, list(cloud_bk.tags)),
                name="load_cloud_tags"
            )

        await self._data_holder.set_etag_version(cloud.etag_version)
        logger.info("Loaded cloud collection v%d: %d of %d entries matched",
                    cloud.etag_version, matched, len(cloud.bks))
        return matched

    def _replace_tags(self, url: str, tags: List[str]):
        def replace() -> None:
            collection = self._data_holder.collection
            bk = collection.bks.get(url)
            if bk is None:
                return
            for tag in tags:
                collection.ensure_tag(tag)
            bk.tags = tags

        return replace

    def export_cloud_collection(self) -> CloudBkCollection:
        """Project the tagged local bookmarks into the cloud shape."""
        local = self._data_holder.collection
        return CloudBkCollection(
            bks={
                bk.url_hash: CloudBk(tags=list(bk.tags))
                for bk in local.bks.values()
                if bk.tags
            },
            etag_version=local.etag_version,
            last_update_time=local.last_update_time,
        )


def load_cloud_file(path: Union[str, Path]) -> CloudBkCollection:
    """Read a cloud snapshot from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return CloudBkCollection.from_dict(json.load(f))


def save_cloud_file(cloud: CloudBkCollection, path: Union[str, Path], pretty: bool = True) -> None:
    """Write a cloud snapshot to a JSON file."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(cloud.to_dict(), f, ensure_ascii=False, indent=2 if pretty else None)
