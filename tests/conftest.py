import asyncio
import pytest
import pytest_asyncio
import tempfile
import shutil
import os
import threading
from datetime import datetime, timezone
from unittest.mock import patch

from bkm.clock import FixedClock
from bkm.data_holder import BkDataHolder
from bkm.db import Database
from bkm.entities import BookmarkNode
from bkm.manager import BkManager


@pytest.fixture
def temp_db():
    """Create a temporary database file path."""
    temp_dir = tempfile.mkdtemp(prefix="bkm_test_db_")
    db_path = os.path.join(temp_dir, "test.db")
    yield db_path
    shutil.rmtree(temp_dir)


@pytest.fixture
def clock():
    """Clock frozen at a known instant."""
    return FixedClock(datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def sample_nodes():
    """A small browser bookmark tree: two folders, three bookmarks."""
    return [
        BookmarkNode(
            id="1",
            title="Bookmarks bar",
            children=[
                BookmarkNode(id="10", title="Python", url="https://www.python.org/", parent_id="1"),
                BookmarkNode(
                    id="11",
                    title="Dev",
                    parent_id="1",
                    children=[
                        BookmarkNode(id="110", title="GitHub", url="https://github.com/", parent_id="11"),
                    ],
                ),
            ],
        ),
        BookmarkNode(
            id="2",
            title="Other bookmarks",
            children=[
                BookmarkNode(id="20", title="Docs", url="https://docs.python.org/", parent_id="2"),
            ],
        ),
    ]


@pytest_asyncio.fixture
async def holder(temp_db, clock):
    """Started data holder over a fresh database."""
    data_holder = BkDataHolder(Database(path=temp_db), clock=clock)
    await data_holder.start()
    yield data_holder
    await data_holder.stop()


@pytest_asyncio.fixture
async def manager(holder, clock, sample_nodes):
    """Manager over a started holder that already tracks the sample bookmarks."""
    bk_manager = BkManager(holder, clock=clock)
    await bk_manager.append_bookmarks(sample_nodes)
    return bk_manager


@pytest.fixture
def held_saves():
    """Block every snapshot save until the yielded event is set."""
    release = threading.Event()
    save = Database.save_collection

    def held(self, collection):
        release.wait(timeout=5)
        save(self, collection)

    with patch.object(Database, "save_collection", held):
        yield release
        release.set()


async def _wait_for_pending(holder, count):
    for _ in range(500):
        if holder.pending >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"expected {count} pending mutations, got {holder.pending}")


@pytest.fixture
def wait_pending():
    """Coroutine function that waits until a holder has N queued mutations."""
    return _wait_for_pending
