"""Record normalizer.

Converts raw Reddit items into canonical PostRecord / CommentRecord
values and derives the intent tag of posts.

Usage:
    normalizer = RecordNormalizer(settings.intent_patterns())

    post = normalizer.normalize(child, facet="hot")
    comment = normalizer.normalize(
        child, context=CommentContext(post_id="abc123", subreddit="rust", post_title="...")
    )
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from ruddit_core.config import IntentPatterns
from ruddit_core.errors import InvalidIdentityError, ParseError
from ruddit_core.providers.base import CommentRecord, Intent, ItemKind, PostRecord


DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PERMALINK_BASE = "https://reddit.com"


def parse_post_identity(id36: Any) -> int:
    """Turn a base-36 post id into the integer identity.

    Args:
        id36: The upstream id, e.g. ``"1abcde"`` (a ``t3_`` prefix is allowed).

    Returns:
        A positive integer.

    Raises:
        InvalidIdentityError: If the id does not parse or parses to zero.
    """
    if not isinstance(id36, str) or not id36.strip():
        raise InvalidIdentityError(f"Missing post id: {id36!r}", payload=id36)

    value = id36.strip()
    if value.startswith(f"{ItemKind.LINK.value}_"):
        value = value[3:]

    try:
        identity = int(value, 36)
    except ValueError as e:
        raise InvalidIdentityError(f"Post id is not base-36: {id36!r}", payload=id36) from e

    if identity <= 0:
        raise InvalidIdentityError(f"Post id maps to a degenerate identity: {id36!r}", payload=id36)

    return identity


def format_timestamp(ts: int) -> str:
    """Format epoch seconds as a UTC date string."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime(DATE_FORMAT)


def calculate_intent(text: str, patterns: IntentPatterns) -> Intent:
    """Classify text by substring match, high patterns before medium.

    ``text`` must already be lower-cased; patterns are lower-cased by
    ``Settings.intent_patterns()``.
    """
    if any(p in text for p in patterns.high):
        return Intent.HIGH
    if any(p in text for p in patterns.medium):
        return Intent.MEDIUM
    return Intent.LOW


@dataclass(frozen=True)
class CommentContext:
    """Fetch context stamped on every comment of one tree."""

    post_id: str
    subreddit: str
    post_title: str


class RecordNormalizer:
    """Map raw Reddit payloads to canonical records."""

    def __init__(self, patterns: IntentPatterns, clock: Callable[[], float] = time.time):
        self.patterns = patterns
        self._clock = clock

    def normalize(
        self,
        raw_item: dict[str, Any],
        facet: str = "",
        context: Optional[CommentContext] = None,
    ) -> Union[PostRecord, CommentRecord]:
        """Normalize a listing child or a bare data object.

        Dispatches on the listing ``kind`` (t3 post, t1 comment). Without a
        kind, an object with a title is a post and one with a body is a
        comment.

        Args:
            raw_item: ``{"kind": ..., "data": {...}}`` or the data object itself.
            facet: Sort facet the post was observed under.
            context: Required for comments.

        Raises:
            ParseError: For unsupported kinds or unrecognizable payloads.
            InvalidIdentityError: For posts without a usable identity.
        """
        if not isinstance(raw_item, dict):
            raise ParseError("Item is not an object", payload=raw_item)

        kind = raw_item.get("kind")
        data = raw_item.get("data") if "data" in raw_item else raw_item
        if not isinstance(data, dict):
            raise ParseError("Item data is not an object", payload=raw_item)

        if kind is None:
            if "title" in data:
                kind = ItemKind.LINK.value
            elif "body" in data:
                kind = ItemKind.COMMENT.value

        if kind == ItemKind.LINK.value:
            return self.normalize_post(data, facet)

        if kind == ItemKind.COMMENT.value:
            if context is None:
                raise ParseError("Comment needs a fetch context", payload=raw_item)
            return self.normalize_comment(data, context)

        raise ParseError(f"Unsupported item kind: {kind!r}", payload=raw_item)

    def normalize_post(self, data: dict[str, Any], facet: str = "") -> PostRecord:
        """Map a Reddit link object to a PostRecord."""
        identity = parse_post_identity(data.get("id"))
        timestamp = self._timestamp(data)

        title = data.get("title") or ""
        selftext = data.get("selftext") or None
        text = f"{title} {selftext or ''}".lower()

        return PostRecord(
            id=identity,
            timestamp=timestamp,
            formatted_date=format_timestamp(timestamp),
            title=title,
            url=data.get("url") or "",
            permalink=self._absolute_permalink(data.get("permalink")),
            subreddit=data.get("subreddit") or "",
            sort_type=facet,
            name=data.get("name") or f"{ItemKind.LINK.value}_{data.get('id')}",
            author=data.get("author") or "[deleted]",
            score=self._int(data.get("score")),
            is_self=bool(data.get("is_self", False)),
            num_comments=self._int(data.get("num_comments")),
            intent=calculate_intent(text, self.patterns).value,
            relevance_score=0,
            selftext=selftext,
            thumbnail=self._thumbnail(data.get("thumbnail")),
            date_added=int(self._clock()),
        )

    def normalize_comment(
        self,
        data: dict[str, Any],
        context: CommentContext,
        depth: int = 0,
    ) -> CommentRecord:
        """Map a Reddit comment object to a CommentRecord.

        The post id comes from ``context``; the comment's own ``link_id`` is
        ignored.
        """
        comment_id = data.get("id")
        if not isinstance(comment_id, str) or not comment_id:
            raise ParseError("Comment has no id", payload=data)

        timestamp = self._timestamp(data)

        return CommentRecord(
            id=comment_id,
            post_id=context.post_id,
            parent_id=data.get("parent_id") or "",
            body=data.get("body") or "",
            author=data.get("author") or "[deleted]",
            timestamp=timestamp,
            formatted_date=format_timestamp(timestamp),
            score=self._int(data.get("score")),
            permalink=self._absolute_permalink(data.get("permalink")),
            subreddit=context.subreddit or data.get("subreddit") or "",
            post_title=context.post_title,
            depth=depth,
        )

    # =========================================================================
    # MAPPING HELPERS
    # =========================================================================

    def _timestamp(self, data: dict[str, Any]) -> int:
        ts = data.get("created_utc")
        if ts is None:
            return 0
        try:
            return int(float(ts))
        except (TypeError, ValueError) as e:
            raise ParseError(f"Invalid created_utc: {ts!r}", payload=data) from e

    def _absolute_permalink(self, permalink: Optional[str]) -> str:
        if not permalink:
            return ""
        if permalink.startswith("http"):
            return permalink
        return f"{PERMALINK_BASE}{permalink}"

    def _thumbnail(self, thumbnail: Optional[str]) -> Optional[str]:
        # Reddit uses placeholders such as "self" and "default"
        if isinstance(thumbnail, str) and thumbnail.startswith("http"):
            return thumbnail
        return None

    def _int(self, value: Any) -> int:
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0
