"""
Tests for bkm/cloud.py

Covers loading cloud snapshots into the local collection, exporting the
tagged bookmarks, and the JSON file helpers.
"""
import asyncio
import json
import pytest

from bkm.cloud import CloudReconciler, load_cloud_file, save_cloud_file
from bkm.entities import BookmarkNode, CloudBk, CloudBkCollection, url_hash

PYTHON = "https://www.python.org/"
GITHUB = "https://github.com/"
DOCS = "https://docs.python.org/"


class TestLoadCloudCollection:
    """Cloud snapshot applied to local bookmarks."""

    @pytest.mark.asyncio
    async def test_cloud_tags_replace_local_tags(self, manager):
        """Cloud wins: local tags of matched bookmarks are overwritten."""
        await manager.add_tag(PYTHON, "x")
        cloud = CloudBkCollection(
            bks={url_hash(PYTHON): CloudBk(tags=["y", "z"])},
            etag_version=7,
        )

        matched = await manager.load_cloud_collection(cloud)

        assert matched == 1
        assert manager.get(PYTHON).tags == ["y", "z"]
        assert manager.get_etag_version() == 7

    @pytest.mark.asyncio
    async def test_unknown_hash_is_ignored(self, manager):
        """Cloud entries never create local bookmarks."""
        cloud = CloudBkCollection(
            bks={url_hash("https://elsewhere.example/"): CloudBk(tags=["far"])},
            etag_version=3,
        )

        matched = await manager.load_cloud_collection(cloud)

        assert matched == 0
        assert len(manager.list_bookmarks()) == 3
        assert manager.get_etag_version() == 3

    @pytest.mark.asyncio
    async def test_cloud_tags_enter_registry(self, manager):
        cloud = CloudBkCollection(bks={url_hash(GITHUB): CloudBk(tags=["git"])}, etag_version=1)

        await manager.load_cloud_collection(cloud)

        assert manager.get_tags() == ["git"]

    @pytest.mark.asyncio
    async def test_loaded_tags_are_not_shared_with_snapshot(self, manager):
        cloud = CloudBkCollection(bks={url_hash(GITHUB): CloudBk(tags=["git"])}, etag_version=1)

        await manager.load_cloud_collection(cloud)
        cloud.bks[url_hash(GITHUB)].tags.append("later")

        assert manager.get(GITHUB).tags == ["git"]

    @pytest.mark.asyncio
    async def test_reconciler_over_holder(self, holder):
        """The reconciler works directly on a data holder."""
        await holder.append_bookmarks([BookmarkNode(id="1", title="A", url="a")])
        reconciler = CloudReconciler(holder)

        await reconciler.load_cloud_collection(
            CloudBkCollection(bks={url_hash("a"): CloudBk(tags=["y", "z"])}, etag_version=7)
        )

        assert holder.collection.bks["a"].tags == ["y", "z"]
        assert holder.collection.etag_version == 7


class TestExportCloudCollection:
    """Local collection projected to the cloud shape."""

    @pytest.mark.asyncio
    async def test_export_only_tagged_bookmarks(self, manager):
        await manager.add_tag(PYTHON, "lang")
        await manager.add_tag(GITHUB, "git")
        await manager.remove_tag(GITHUB, "git")
        await manager.update_fav_icon_urls({PYTHON: "https://www.python.org/favicon.ico"})
        await manager.add_click(PYTHON, 4)

        cloud = manager.get_cloud_collection()

        assert list(cloud.bks) == [url_hash(PYTHON)]
        assert cloud.to_dict()["bks"] == {url_hash(PYTHON): {"tags": ["lang"]}}

    @pytest.mark.asyncio
    async def test_export_carries_etag_version(self, manager):
        await manager.load_cloud_collection(CloudBkCollection(etag_version=11))

        assert manager.get_cloud_collection().etag_version == 11

    @pytest.mark.asyncio
    async def test_export_copies_tag_lists(self, manager):
        await manager.add_tag(DOCS, "docs")

        cloud = manager.get_cloud_collection()
        cloud.bks[url_hash(DOCS)].tags.append("mutated")

        assert manager.get(DOCS).tags == ["docs"]


class TestCloudFiles:

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "cloud.json"
        cloud = CloudBkCollection(bks={"h1": CloudBk(tags=["a"])}, etag_version=5)

        save_cloud_file(cloud, path)
        loaded = load_cloud_file(path)

        assert loaded.bks["h1"].tags == ["a"]
        assert loaded.etag_version == 5

    def test_compact_output(self, tmp_path):
        path = tmp_path / "cloud.json"

        save_cloud_file(CloudBkCollection(), path, pretty=False)

        assert "\n" not in path.read_text()
        assert json.loads(path.read_text())["etagVersion"] == 0


class TestLoadBehindRestore:

    @pytest.mark.asyncio
    async def test_cloud_tags_applied_to_restored_bookmark(self, manager, holder, held_saves, wait_pending):
        """A cloud load queued behind a restore tags the restored bookmark."""
        busy = asyncio.create_task(holder.push_change(lambda: None, name="busy"))
        await asyncio.sleep(0.05)  # worker is now stuck saving

        restoring = asyncio.create_task(manager.restore())
        await wait_pending(holder, 1)
        loading = asyncio.create_task(manager.load_cloud_collection(
            CloudBkCollection(bks={url_hash(GITHUB): CloudBk(tags=["git"])}, etag_version=4)
        ))
        await wait_pending(holder, 2)

        held_saves.set()
        await asyncio.gather(busy, restoring, loading)

        assert manager.get(GITHUB).tags == ["git"]
        assert manager.get_tags() == ["git"]
        assert manager.get_etag_version() == 4
