"""Canonical records and shared provider types.

Every upstream item ends up as one of two normalized records:
- PostRecord: a link/self post observed under one or more sort facets
- CommentRecord: one node of a flattened comment tree

The records are plain dataclasses so they cross the API boundary as
structured data without leaking ORM or HTTP types.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar


# =============================================================================
# ENUMS
# =============================================================================


class Intent(str, Enum):
    """Coarse purchase/help intent derived from keyword matching."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class QueryMode(str, Enum):
    """How a query string is sent upstream."""

    LISTING = "listing"  # query names a community
    SEARCH = "search"  # free-text search, optionally community-scoped

    @classmethod
    def infer(cls, query: str) -> "QueryMode":
        """Pick LISTING for a bare ``r/<name>`` and SEARCH otherwise.

        ``r/<name> <terms>`` is a search scoped to that community; see
        ``split_community_scope``.
        """
        text = query.strip()
        if text.lower().startswith("r/") and len(text.split()) == 1:
            return cls.LISTING
        return cls.SEARCH


def split_community_scope(query: str) -> tuple[str, Optional[str]]:
    """Split ``r/<name> <terms>`` into ``(terms, name)``.

    Any other query comes back unchanged with no community.
    """
    parts = query.strip().split(None, 1)
    if len(parts) == 2 and parts[0].lower().startswith("r/") and len(parts[0]) > 2:
        return parts[1].strip(), parts[0][2:]
    return query.strip(), None


class ItemKind(str, Enum):
    """Listing child kinds the pipeline understands."""

    COMMENT = "t1"
    LINK = "t3"
    MORE = "more"


# =============================================================================
# FACETS
# =============================================================================


LISTING_FACETS = frozenset({"hot", "new", "top", "rising"})
SEARCH_FACETS = frozenset({"hot", "new", "top", "relevance", "comments"})
COMMENT_SORTS = frozenset({"confidence", "top", "new", "controversial", "old", "qa"})

FACET_SEPARATOR = ","


def split_facets(sort_type: str) -> list[str]:
    """Split a stored facet string into its ordered facet names."""
    return [f for f in sort_type.split(FACET_SEPARATOR) if f]


def join_facets(facets: list[str]) -> str:
    """Join facets, keeping the first occurrence of each name."""
    seen: list[str] = []
    for facet in facets:
        if facet and facet not in seen:
            seen.append(facet)
    return FACET_SEPARATOR.join(seen)


# =============================================================================
# RECORDS
# =============================================================================


@dataclass
class PostRecord:
    """Normalized post.

    ``notes``, ``assignee``, ``engaged`` and ``interest`` are user-editable;
    ingestion always produces them empty and the store never overwrites
    them on re-insertion.
    """

    id: int
    timestamp: int
    formatted_date: str
    title: str
    url: str
    permalink: str
    subreddit: str
    sort_type: str
    name: str
    author: str
    score: int
    is_self: bool
    num_comments: int
    intent: str = Intent.LOW.value
    relevance_score: int = 0
    selftext: Optional[str] = None
    thumbnail: Optional[str] = None
    date_added: int = 0
    notes: str = ""
    assignee: str = ""
    engaged: bool = False
    interest: int = 0

    @property
    def facets(self) -> list[str]:
        return split_facets(self.sort_type)

    def add_facet(self, facet: str) -> bool:
        """Union a facet into ``sort_type``.

        Returns:
            True if the facet was new for this record.
        """
        facets = self.facets
        if facet in facets:
            return False
        self.sort_type = join_facets(facets + [facet])
        return True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CommentRecord:
    """Normalized comment with an explicit link to its parent.

    ``post_id`` is the base-36 id of the post the tree was fetched for;
    ``parent_id`` is the upstream fullname of the parent (``t1_`` or ``t3_``).
    """

    id: str
    post_id: str
    parent_id: str
    body: str
    author: str
    timestamp: int
    formatted_date: str
    score: int
    permalink: str
    subreddit: str
    post_title: str
    depth: int = 0
    notes: str = ""
    assignee: str = ""
    engaged: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# PAGINATION
# =============================================================================


T = TypeVar("T")


@dataclass
class PaginatedResult(Generic[T]):
    """One page of results plus the cursor for the next page."""

    items: list[T]
    next_cursor: Optional[str] = None
    has_more: bool = False


@dataclass
class RawListing:
    """Undecoded listing page as returned upstream.

    ``children`` are the ``{"kind": ..., "data": {...}}`` envelopes.
    """

    children: list[dict[str, Any]] = field(default_factory=list)
    after: Optional[str] = None
