"""Local post and comment store.

Three collections live in the SQLite database:
- saved posts (``reddit_posts``): unique by identity, insert-or-ignore
- current search (``subreddit_search``): replaced on every query run
- comments (``reddit_comments``): append-only, insert-or-ignore by id

Every writer runs in one transaction and raises PersistenceError on
failure. Re-inserting a saved post or a stored comment never touches the
existing row, so user-edited notes, assignee, engagement and interest
survive re-ingestion.

Usage:
    store = PostStore(get_session_factory())

    store.replace_current_search(run.posts)
    store.upsert_saved([post])
    store.update_notes(post.id, "follow up next week")

    hits = store.search_posts("rust")
"""

from collections import Counter
from dataclasses import fields
from typing import Any, Callable, Optional, Union

from sqlalchemy import delete, func, literal, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ruddit_core.domain.models import Comment, SavedPost, SearchPost
from ruddit_core.infra.db import session_scope
from ruddit_core.providers.base import (
    FACET_SEPARATOR,
    CommentRecord,
    PostRecord,
    split_facets,
)


POST_FIELDS = tuple(f.name for f in fields(PostRecord))
COMMENT_FIELDS = tuple(f.name for f in fields(CommentRecord))

PostModel = Union[type[SavedPost], type[SearchPost]]


class PostStore:
    """Readers and writers over the local database."""

    def __init__(self, session_factory: Callable[[], Session]):
        """Initialize the store.

        Args:
            session_factory: Produces sessions bound to an engine whose
                schema already exists (see ``create_store_engine``).
        """
        self.session_factory = session_factory

    # =========================================================================
    # POST WRITERS
    # =========================================================================

    def upsert_saved(self, posts: list[PostRecord]) -> int:
        """Insert posts into the saved collection, ignoring known identities.

        Returns:
            Number of posts actually inserted.
        """
        if not posts:
            return 0

        inserted = 0
        with session_scope(self.session_factory) as session:
            for post in posts:
                stmt = (
                    sqlite_insert(SavedPost)
                    .values(**_post_values(post))
                    .on_conflict_do_nothing(index_elements=["id"])
                )
                inserted += session.execute(stmt).rowcount
        return inserted

    def replace_current_search(self, posts: list[PostRecord]) -> int:
        """Replace the current-search collection in one transaction."""
        with session_scope(self.session_factory) as session:
            session.execute(delete(SearchPost))
            self._insert_search_rows(session, posts)
        return len(posts)

    def append_current_search(self, posts: list[PostRecord]) -> int:
        with session_scope(self.session_factory) as session:
            self._insert_search_rows(session, posts)
        return len(posts)

    def _insert_search_rows(self, session: Session, posts: list[PostRecord]) -> None:
        for post in posts:
            session.add(SearchPost(**_post_values(post)))

    def remove_saved(self, post_id: int) -> bool:
        """Delete one saved post.

        Returns:
            True if a row was deleted.
        """
        with session_scope(self.session_factory) as session:
            result = session.execute(delete(SavedPost).where(SavedPost.id == post_id))
            return result.rowcount > 0

    def clear_saved(self) -> int:
        return self._clear(SavedPost)

    def clear_current_search(self) -> int:
        return self._clear(SearchPost)

    def clear_comments(self) -> int:
        return self._clear(Comment)

    def _clear(self, model: Any) -> int:
        with session_scope(self.session_factory) as session:
            return session.execute(delete(model)).rowcount

    # =========================================================================
    # USER-EDITABLE FIELDS
    # =========================================================================

    def update_notes(self, post_id: int, notes: str) -> bool:
        return self._update(SavedPost, post_id, notes=notes)

    def update_assignee(self, post_id: int, assignee: str) -> bool:
        return self._update(SavedPost, post_id, assignee=assignee)

    def update_engaged(self, post_id: int, engaged: bool) -> bool:
        return self._update(SavedPost, post_id, engaged=engaged)

    def update_interest(self, post_id: int, interest: int) -> bool:
        return self._update(SavedPost, post_id, interest=interest)

    def update_comment_notes(self, comment_id: str, notes: str) -> bool:
        return self._update(Comment, comment_id, notes=notes)

    def update_comment_assignee(self, comment_id: str, assignee: str) -> bool:
        return self._update(Comment, comment_id, assignee=assignee)

    def update_comment_engaged(self, comment_id: str, engaged: bool) -> bool:
        return self._update(Comment, comment_id, engaged=engaged)

    def _update(self, model: Any, key: Any, **values: Any) -> bool:
        """Update one row; a missing row is not an error.

        Returns:
            True if the row existed.
        """
        with session_scope(self.session_factory) as session:
            result = session.execute(update(model).where(model.id == key).values(**values))
            return result.rowcount > 0

    # =========================================================================
    # POST READERS
    # =========================================================================

    def get_saved(self, post_id: int) -> Optional[PostRecord]:
        with session_scope(self.session_factory) as session:
            row = session.get(SavedPost, post_id)
            return _post_record(row) if row is not None else None

    def get_all_saved(self) -> list[PostRecord]:
        return self._select_posts(SavedPost)

    def get_recent(self, limit: int) -> list[PostRecord]:
        """Most recent saved posts by creation time."""
        return self._select_posts(SavedPost, limit=limit)

    def get_by_facet(self, facet: str, limit: Optional[int] = None) -> list[PostRecord]:
        """Saved posts observed under ``facet``."""
        # Wrap in separators so "hot" does not match "hotness"
        padded = literal(FACET_SEPARATOR) + SavedPost.sort_type + literal(FACET_SEPARATOR)
        return self._select_posts(
            SavedPost,
            padded.like(f"%{FACET_SEPARATOR}{facet}{FACET_SEPARATOR}%"),
            limit=limit,
        )

    def get_by_subreddit(self, subreddit: str, limit: Optional[int] = None) -> list[PostRecord]:
        return self._select_posts(SavedPost, SavedPost.subreddit == subreddit, limit=limit)

    def search_posts(self, term: str, limit: Optional[int] = None) -> list[PostRecord]:
        """Saved posts whose title, subreddit or facet set contains ``term``."""
        pattern = f"%{term}%"
        return self._select_posts(
            SavedPost,
            or_(
                SavedPost.title.like(pattern),
                SavedPost.subreddit.like(pattern),
                SavedPost.sort_type.like(pattern),
            ),
            limit=limit,
        )

    def get_current_search(self) -> list[PostRecord]:
        return self._select_posts(SearchPost)

    def get_current_search_post(self, post_id: int) -> Optional[PostRecord]:
        posts = self._select_posts(SearchPost, SearchPost.id == post_id, limit=1)
        return posts[0] if posts else None

    def get_all_posts(self) -> list[PostRecord]:
        """Saved and current-search posts, one record per identity.

        The saved copy wins when a post is in both collections.
        """
        merged: dict[int, PostRecord] = {}
        for post in self.get_current_search():
            merged.setdefault(post.id, post)
        for post in self.get_all_saved():
            merged[post.id] = post
        return sorted(merged.values(), key=lambda p: p.timestamp, reverse=True)

    def count_saved_by_facet(self) -> list[tuple[str, int]]:
        """Number of saved posts per facet, most common first."""
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(SavedPost.sort_type, func.count()).group_by(SavedPost.sort_type)
            ).all()

        counts: Counter[str] = Counter()
        for sort_type, count in rows:
            for facet in split_facets(sort_type or ""):
                counts[facet] += count
        return counts.most_common()

    def _select_posts(
        self,
        model: PostModel,
        *criteria: Any,
        limit: Optional[int] = None,
    ) -> list[PostRecord]:
        stmt = select(model).where(*criteria).order_by(model.timestamp.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with session_scope(self.session_factory) as session:
            return [_post_record(row) for row in session.scalars(stmt)]

    # =========================================================================
    # COMMENTS
    # =========================================================================

    def append_comments(self, comments: list[CommentRecord]) -> int:
        """Insert comments, ignoring ids that are already stored.

        Returns:
            Number of comments actually inserted.
        """
        if not comments:
            return 0

        inserted = 0
        with session_scope(self.session_factory) as session:
            for comment in comments:
                stmt = (
                    sqlite_insert(Comment)
                    .values(**{name: getattr(comment, name) for name in COMMENT_FIELDS})
                    .on_conflict_do_nothing(index_elements=["id"])
                )
                inserted += session.execute(stmt).rowcount
        return inserted

    def get_all_comments(self) -> list[CommentRecord]:
        return self._select_comments()

    def get_comments_for_post(self, post_id: str) -> list[CommentRecord]:
        return self._select_comments(Comment.post_id == post_id)

    def _select_comments(self, *criteria: Any) -> list[CommentRecord]:
        stmt = select(Comment).where(*criteria).order_by(Comment.timestamp.desc())
        with session_scope(self.session_factory) as session:
            return [
                CommentRecord(**{name: getattr(row, name) for name in COMMENT_FIELDS})
                for row in session.scalars(stmt)
            ]


def _post_values(post: PostRecord) -> dict[str, Any]:
    return {name: getattr(post, name) for name in POST_FIELDS}


def _post_record(row: Union[SavedPost, SearchPost]) -> PostRecord:
    return PostRecord(**{name: getattr(row, name) for name in POST_FIELDS})
