"""
In-memory data model for BKM.

The collection held by the data holder is made of these plain dataclasses.
Bookmarks are keyed by URL locally and by ``url_hash`` across the cloud
boundary, so URLs themselves never leave the machine.
"""
import copy
import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Set


def url_hash(url: str) -> str:
    """
    Compute the cloud join key for a URL.

    Args:
        url: Bookmark URL

    Returns:
        Lowercase hex SHA-256 digest of the UTF-8 encoded URL
    """
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # fromisoformat() before 3.11 rejects the trailing Z
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass
class Bk:
    """
    Metadata kept for one browser bookmark.

    Attributes:
        url: Bookmark URL, unique within the collection
        url_hash: Content hash of the URL, used as the cloud sync key
        title: Title reported by the bookmark source
        tags: Ordered tag list, None when the bookmark was never tagged
        fav_icon_url: Last known favicon URL
        clicked_count: Number of recorded clicks
        last_click_time: Time of the most recent recorded click
    """
    url: str
    url_hash: str
    title: str = ""
    tags: Optional[List[str]] = None
    fav_icon_url: Optional[str] = None
    clicked_count: int = 0
    last_click_time: Optional[datetime] = None

    @classmethod
    def create(cls, url: str, title: str = "") -> "Bk":
        """Create a bookmark entry with its hash computed from the URL."""
        return cls(url=url, url_hash=url_hash(url), title=title)

    def has_tag(self, tag: str) -> bool:
        return bool(self.tags) and tag in self.tags

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "urlHash": self.url_hash,
            "title": self.title,
            "tags": list(self.tags) if self.tags is not None else None,
            "favIconUrl": self.fav_icon_url,
            "clickedCount": self.clicked_count,
            "lastClickTime": _format_time(self.last_click_time),
        }


@dataclass
class BkTag:
    """Entry of the tag registry."""
    tag: str
    tag_alias: Set[str] = field(default_factory=set)


@dataclass
class BkCollection:
    """
    Everything BKM knows about the user's bookmarks.

    ``etag_version`` is a watermark handed out by the cloud side; the local
    side only ever copies it, never increments it.
    """
    bks: Dict[str, Bk] = field(default_factory=dict)
    tags: Dict[str, BkTag] = field(default_factory=dict)
    etag_version: int = 0
    last_update_time: Optional[datetime] = None
    created_time: Optional[datetime] = None

    def ensure_tag(self, tag: str) -> bool:
        """
        Register a tag name if it is not known yet.

        Returns:
            True if a new registry entry was created
        """
        if tag in self.tags:
            return False
        self.tags[tag] = BkTag(tag=tag)
        return True

    def snapshot(self) -> "BkCollection":
        """Deep copy, safe to hand to another thread."""
        return copy.deepcopy(self)

    def replace_with(self, other: "BkCollection") -> None:
        """Swap in the contents of another collection, keeping this object."""
        self.bks = other.bks
        self.tags = other.tags
        self.etag_version = other.etag_version
        self.last_update_time = other.last_update_time
        self.created_time = other.created_time


@dataclass
class CloudBk:
    """A bookmark as stored in the cloud: tags only."""
    tags: List[str] = field(default_factory=list)


@dataclass
class CloudBkCollection:
    """Cloud snapshot of the tagged bookmarks, keyed by url hash."""
    bks: Dict[str, CloudBk] = field(default_factory=dict)
    etag_version: int = 0
    last_update_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire dictionary."""
        return {
            "bks": {key: {"tags": list(bk.tags)} for key, bk in self.bks.items()},
            "etagVersion": self.etag_version,
            "lastUpdateTime": _format_time(self.last_update_time),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CloudBkCollection":
        """Build from the wire dictionary."""
        bks = {
            key: CloudBk(tags=list((value or {}).get("tags") or []))
            for key, value in (data.get("bks") or {}).items()
        }
        return cls(
            bks=bks,
            etag_version=int(data.get("etagVersion", 0)),
            last_update_time=_parse_time(data.get("lastUpdateTime")),
        )


@dataclass
class BookmarkNode:
    """
    Node of a browser bookmark tree.

    Folders carry children and no URL; bookmarks carry a URL.
    """
    id: str
    title: str = ""
    url: Optional[str] = None
    parent_id: Optional[str] = None
    children: List["BookmarkNode"] = field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.url is None

    def iter_urls(self) -> Iterator["BookmarkNode"]:
        """Yield every node in this subtree that has a URL, depth first."""
        if self.url:
            yield self
        for child in self.children:
            yield from child.iter_urls()
