"""Domain models for Ruddit.

SQLAlchemy ORM tables of the local store:
- reddit_posts: durable saved posts, one row per post identity
- subreddit_search: results of the latest query run (no uniqueness on id)
- reddit_comments: flattened comments, one row per comment id
- provider_credentials: cached tokens for the upstream API
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# POSTS
# =============================================================================


class PostColumns:
    """Columns shared by the saved and current-search post tables."""

    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    formatted_date: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    sort_type: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    relevance_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subreddit: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    permalink: Mapped[str] = mapped_column(Text, nullable=False, default="")
    name: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    selftext: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    thumbnail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_self: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    num_comments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    intent: Mapped[str] = mapped_column(String(8), nullable=False, default="Low")
    date_added: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # User-editable fields
    engaged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assignee: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    interest: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @declared_attr.directive
    def __table_args__(cls):
        return (
            Index(f"idx_{cls.__tablename__}_timestamp", "timestamp"),
            Index(f"idx_{cls.__tablename__}_subreddit", "subreddit"),
        )


class SavedPost(PostColumns, Base):
    """User-curated posts; the post identity is the primary key."""

    __tablename__ = "reddit_posts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)


class SearchPost(PostColumns, Base):
    """Latest query run results; the same identity may appear more than once."""

    __tablename__ = "subreddit_search"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


# =============================================================================
# COMMENTS
# =============================================================================


class Comment(Base):
    """Flattened comments, append-only by comment id."""

    __tablename__ = "reddit_comments"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    post_id: Mapped[str] = mapped_column(String(32), nullable=False)
    parent_id: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    author: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    formatted_date: Mapped[str] = mapped_column(String(32), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    permalink: Mapped[str] = mapped_column(Text, nullable=False, default="")
    subreddit: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    post_title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # User-editable fields
    engaged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assignee: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        Index("idx_comments_post", "post_id"),
        Index("idx_comments_timestamp", "timestamp"),
    )


# =============================================================================
# CREDENTIALS
# =============================================================================


class ProviderCredential(Base):
    """Cached tokens for the upstream API (optionally encrypted)."""

    __tablename__ = "provider_credentials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_id: Mapped[str] = mapped_column(String(32), nullable=False)
    credential_type: Mapped[str] = mapped_column(String(64), nullable=False)
    secret: Mapped[str] = mapped_column(Text, nullable=False)
    encrypted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    rotated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("provider_id", "credential_type", name="uq_cred"),
    )
