"""
SQLAlchemy models for BKM persistence.

The in-memory collection is the source of truth while the process runs;
these tables hold the last persisted snapshot of it.
"""
from datetime import datetime
from typing import Optional, List
from sqlalchemy import BigInteger, Integer, String, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class BookmarkRecord(Base):
    """
    Persisted bookmark metadata.

    Attributes:
        url: Bookmark URL (primary key)
        url_hash: SHA-256 of the URL, the cloud sync key
        title: Title from the bookmark source
        tags: Ordered tag list as JSON (NULL when never tagged)
        fav_icon_url: Favicon URL
        clicked_count: Recorded clicks
        last_click_time: Most recent recorded click
    """
    __tablename__ = 'bookmarks'

    url: Mapped[str] = mapped_column(String(2048), primary_key=True)
    url_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False, default='')
    # JSON keeps order and duplicates, which a join table would not
    tags: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    fav_icon_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    clicked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_click_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<BookmarkRecord(url='{self.url[:50]}', tags={self.tags})>"


class TagRecord(Base):
    """Tag registry entry."""
    __tablename__ = 'tags'

    name: Mapped[str] = mapped_column(String(256), primary_key=True)
    aliases: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    # Registry order is insertion order
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<TagRecord(name='{self.name}')>"


class CollectionState(Base):
    """Single-row table with the collection-level fields."""
    __tablename__ = 'collection_state'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    etag_version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_update_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<CollectionState(etag_version={self.etag_version})>"
