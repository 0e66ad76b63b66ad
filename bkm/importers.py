"""
Bookmark sources for BKM.

Builds BookmarkNode trees from what browsers hand out: the Chromium
``Bookmarks`` JSON file, or the plain dictionaries a browser extension
receives from its bookmarks API.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from bkm.entities import BookmarkNode

logger = logging.getLogger(__name__)


def load_chrome_bookmarks(path: Union[str, Path]) -> List[BookmarkNode]:
    """
    Read a Chrome/Chromium ``Bookmarks`` file.

    Args:
        path: Path to the ``Bookmarks`` file of a browser profile

    Returns:
        One folder node per root (bookmark bar, other, synced)

    Raises:
        FileNotFoundError: If the file does not exist
    """
    bookmarks_file = Path(path)
    if not bookmarks_file.exists():
        raise FileNotFoundError(f"Bookmarks file not found: {bookmarks_file}")

    try:
        with open(bookmarks_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error("Failed to read Chrome bookmarks: %s", e)
        return []

    roots = []
    for root_name, root_data in (data.get('roots') or {}).items():
        if isinstance(root_data, dict) and 'children' in root_data:
            roots.append(_chrome_node(root_data, parent_id=None, default_id=root_name))
    return roots


def _chrome_node(item: Dict[str, Any], parent_id: Optional[str], default_id: str = "") -> BookmarkNode:
    """Recursively convert a Chrome bookmark item."""
    node = BookmarkNode(
        id=str(item.get('id', default_id)),
        title=item.get('name', ''),
        url=item.get('url') if item.get('type') == 'url' else None,
        parent_id=parent_id,
    )
    for child in item.get('children', []):
        if child.get('type') in ('url', 'folder'):
            node.children.append(_chrome_node(child, parent_id=node.id))
    return node


def nodes_from_dicts(items: Iterable[Dict[str, Any]], parent_id: Optional[str] = None) -> List[BookmarkNode]:
    """
    Build nodes from bookmark-tree dictionaries.

    Accepts the shape of the WebExtension bookmarks API
    (``id``, ``title``, ``url``, ``parentId``, ``children``).
    """
    nodes = []
    for item in items:
        node = BookmarkNode(
            id=str(item.get('id', '')),
            title=item.get('title', ''),
            url=item.get('url') or None,
            parent_id=item.get('parentId', parent_id),
        )
        node.children = nodes_from_dicts(item.get('children') or [], parent_id=node.id)
        nodes.append(node)
    return nodes
