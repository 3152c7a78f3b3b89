"""Comment tree flattener.

Turns Reddit's nested reply tree into a flat pre-order list: each comment
is followed by all of its replies before the next sibling. Every record
carries the resolved post id of the fetch, not the id embedded in the
payload.

Traversal stops descending at ``max_depth`` and skips any comment id it
has already emitted, so malformed or cyclic payloads cannot loop. The
walk keeps its own stack, so thread depth is not limited by the
interpreter recursion limit.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Optional

from ruddit_core.domain.services.normalizer import CommentContext, RecordNormalizer
from ruddit_core.errors import ParseError
from ruddit_core.observability import get_logger
from ruddit_core.providers.base import CommentRecord, ItemKind

logger = get_logger(__name__)


DEFAULT_MAX_DEPTH = 64

_EXHAUSTED = object()


@dataclass
class FlattenStats:
    """Counters of one traversal."""

    emitted: int = 0
    skipped_more: int = 0
    skipped_malformed: int = 0
    skipped_duplicate: int = 0
    truncated: int = 0


class CommentTreeFlattener:
    """Pre-order flattening of a comment tree."""

    def __init__(self, normalizer: RecordNormalizer, max_depth: int = DEFAULT_MAX_DEPTH):
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.normalizer = normalizer
        self.max_depth = max_depth

    def flatten(
        self,
        root_children: list[Any],
        post_id: str,
        subreddit: str,
        post_title: str,
    ) -> list[CommentRecord]:
        """Flatten the top-level children of a comment listing.

        Args:
            root_children: ``children`` of the comment listing.
            post_id: Resolved base-36 id of the post the tree belongs to.
            subreddit: Community of the post.
            post_title: Title snapshot stamped on every comment.

        Returns:
            Comments in pre-order.
        """
        context = CommentContext(post_id=post_id, subreddit=subreddit, post_title=post_title)
        out: list[CommentRecord] = []
        seen: set[str] = set()
        stats = FlattenStats()

        self._walk(root_children, context, out, seen, stats)

        if stats.skipped_malformed or stats.skipped_duplicate or stats.truncated:
            logger.warning(
                "Comment tree had unusable nodes",
                post_id=post_id,
                malformed=stats.skipped_malformed,
                duplicates=stats.skipped_duplicate,
                truncated=stats.truncated,
            )
        logger.debug(
            "Comment tree flattened",
            post_id=post_id,
            comments=stats.emitted,
            more_stubs=stats.skipped_more,
        )
        return out

    def _walk(
        self,
        root_children: Any,
        context: CommentContext,
        out: list[CommentRecord],
        seen: set[str],
        stats: FlattenStats,
    ) -> None:
        if not isinstance(root_children, list):
            return

        # One (remaining siblings, depth) frame per open reply listing;
        # descending pushes a frame, so each comment precedes its replies
        stack: list[tuple[Iterator[Any], int]] = [(iter(root_children), 0)]

        while stack:
            siblings, depth = stack[-1]
            child = next(siblings, _EXHAUSTED)
            if child is _EXHAUSTED:
                stack.pop()
                continue

            comment = self._comment_of(child, context, depth, stats)
            if comment is None:
                continue

            if comment.id in seen:
                stats.skipped_duplicate += 1
                continue

            seen.add(comment.id)
            out.append(comment)
            stats.emitted += 1

            replies = self._replies_of(child["data"])
            if not replies:
                continue
            if depth + 1 >= self.max_depth:
                stats.truncated += 1
                continue

            stack.append((iter(replies), depth + 1))

    def _comment_of(
        self,
        child: Any,
        context: CommentContext,
        depth: int,
        stats: FlattenStats,
    ) -> Optional[CommentRecord]:
        if not isinstance(child, dict):
            stats.skipped_malformed += 1
            return None

        kind = child.get("kind")
        if kind == ItemKind.MORE.value:
            # "load more" stubs carry ids only
            stats.skipped_more += 1
            return None

        data = child.get("data")
        if kind not in (None, ItemKind.COMMENT.value) or not isinstance(data, dict):
            stats.skipped_malformed += 1
            return None

        try:
            return self.normalizer.normalize_comment(data, context, depth=depth)
        except ParseError:
            stats.skipped_malformed += 1
            return None
    def _replies_of(self, data: dict[str, Any]) -> list[Any]:
        # Reddit sends "" instead of a listing when there are no replies
        replies = data.get("replies")
        if not isinstance(replies, dict):
            return []
        listing = replies.get("data")
        if not isinstance(listing, dict):
            return []
        children = listing.get("children")
        return children if isinstance(children, list) else []
