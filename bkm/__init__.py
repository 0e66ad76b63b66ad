"""
BKM - Bookmark Metadata Keeper

Keeps a browser extension's private metadata about bookmarks (tags, favicon
URLs, click counters) in memory, applies every change through one ordered
mutation queue, persists snapshots, and reconciles with cloud snapshots
keyed by url hash.

Example Usage:
    >>> from bkm import BkManager, BkDataHolder, Database
    >>> manager = BkManager(BkDataHolder(Database(path="bkm.db")))
    >>> await manager.init()
    >>> await manager.add_tag("https://example.com", "demo")
    >>> manager.get_cloud_collection()
"""

__version__ = "0.1.0"
__author__ = "BKM Contributors"

from bkm.clock import Clock, SystemClock, FixedClock
from bkm.config import BkmConfig, get_config, init_config
from bkm.db import Database
from bkm.entities import (
    Bk,
    BkTag,
    BkCollection,
    CloudBk,
    CloudBkCollection,
    BookmarkNode,
    url_hash,
)
from bkm.write_queue import MutationQueue
from bkm.data_holder import BkDataHolder
from bkm.cloud import CloudReconciler, load_cloud_file, save_cloud_file
from bkm.manager import BkManager
from bkm.importers import load_chrome_bookmarks, nodes_from_dicts

__all__ = [
    # Service
    "BkManager",
    "BkDataHolder",
    "MutationQueue",
    "CloudReconciler",
    "Database",
    # Config
    "BkmConfig",
    "get_config",
    "init_config",
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    # Entities
    "Bk",
    "BkTag",
    "BkCollection",
    "CloudBk",
    "CloudBkCollection",
    "BookmarkNode",
    "url_hash",
    # Sources and files
    "load_chrome_bookmarks",
    "nodes_from_dicts",
    "load_cloud_file",
    "save_cloud_file",
]
