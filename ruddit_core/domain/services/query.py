"""Query orchestration.

Runs one query under several sort facets, merges the results by post
identity and writes them to the current-search collection. Also drives
comment fetches, saving and replies.

Merge rules:
- the first facet to return a post sets its ``sort_type``
- later facets returning the same identity are appended once each
- facet outcomes are merged in the order the facets were requested,
  so ``["hot", "new"]`` always yields ``"hot,new"``

A facet that fails is logged and reported in ``QueryRun.failed_facets``;
the other facets still complete and are persisted.

Usage:
    orchestrator = QueryOrchestrator.from_settings(settings, get_session_factory())

    run = await orchestrator.run_query("r/rust", ["hot", "new"])
    comments = await orchestrator.fetch_comments(run.posts[0].permalink)
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Optional

from sqlalchemy.orm import Session

from ruddit_core.config import Settings
from ruddit_core.domain.services.comment_tree import CommentTreeFlattener
from ruddit_core.domain.services.credentials import TokenCache
from ruddit_core.domain.services.normalizer import RecordNormalizer
from ruddit_core.domain.services.store import PostStore
from ruddit_core.errors import (
    AuthRejected,
    InvalidIdentityError,
    ParseError,
    TransportError,
)
from ruddit_core.infrastructure.crypto import CryptoService
from ruddit_core.infrastructure.retry import NO_RETRY, RetryPolicy
from ruddit_core.observability import ProgressIndicator, RunContext, get_collector, get_logger
from ruddit_core.observability.metrics import (
    COMMENTS_FLATTENED,
    FACET_REQUESTS,
    LAST_RUN_POSTS,
    POSTS_MERGED,
    POSTS_QUARANTINED,
)
from ruddit_core.providers.base import (
    COMMENT_SORTS,
    LISTING_FACETS,
    SEARCH_FACETS,
    CommentRecord,
    PaginatedResult,
    PostRecord,
    QueryMode,
    RawListing,
    split_community_scope,
)
from ruddit_core.providers.reddit.adapter import (
    RedditAdapter,
    extract_post_id,
    strip_subreddit_prefix,
)
from ruddit_core.providers.reddit.oauth import RedditOAuthService

logger = get_logger(__name__)


REPLY_PARENT_PREFIXES = ("t1_", "t3_")


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class FacetPage:
    """Normalized posts of one facet request."""

    facet: str
    posts: list[PostRecord] = field(default_factory=list)
    after: Optional[str] = None
    quarantined: int = 0


@dataclass
class QueryRun:
    """Outcome of one multi-facet query."""

    run_id: str
    query: str
    mode: QueryMode
    facets: list[str]
    posts: list[PostRecord] = field(default_factory=list)
    failed_facets: dict[str, str] = field(default_factory=dict)
    quarantined: int = 0
    cursors: dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def succeeded_facets(self) -> list[str]:
        return [f for f in self.facets if f not in self.failed_facets]

    @property
    def partial(self) -> bool:
        return bool(self.failed_facets)


def merge_facet_pages(pages: list[FacetPage]) -> list[PostRecord]:
    """Merge facet results by identity.

    Args:
        pages: Facet outcomes in request order.

    Returns:
        One record per identity, in merge order.
    """
    merged: dict[int, PostRecord] = {}
    for page in pages:
        for post in page.posts:
            existing = merged.get(post.id)
            if existing is not None:
                existing.add_facet(page.facet)
                continue
            post.sort_type = page.facet
            merged[post.id] = post
    return list(merged.values())


class QueryOrchestrator:
    """Fan-out of facet requests plus comment, save and reply operations."""

    def __init__(
        self,
        oauth: RedditOAuthService,
        adapter: RedditAdapter,
        normalizer: RecordNormalizer,
        flattener: CommentTreeFlattener,
        store: PostStore,
        retry_policy: RetryPolicy = NO_RETRY,
    ):
        self.oauth = oauth
        self.adapter = adapter
        self.normalizer = normalizer
        self.flattener = flattener
        self.store = store
        self.retry_policy = retry_policy
        self._metrics = get_collector()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: Callable[[], Session],
        oauth: Optional[RedditOAuthService] = None,
    ) -> "QueryOrchestrator":
        """Wire every component from one settings snapshot."""
        if oauth is None:
            token_cache = TokenCache(session_factory, CryptoService.from_key(settings.encryption_key))
            oauth = RedditOAuthService.from_settings(settings, token_cache)

        normalizer = RecordNormalizer(settings.intent_patterns())
        return cls(
            oauth=oauth,
            adapter=RedditAdapter(
                user_agent=settings.reddit_user_agent,
                timeout=settings.request_timeout_seconds,
                listing_limit=settings.listing_limit,
                comment_limit=settings.comment_limit,
                search_time_filter=settings.search_time_filter,
            ),
            normalizer=normalizer,
            flattener=CommentTreeFlattener(normalizer, max_depth=settings.comment_max_depth),
            store=PostStore(session_factory),
            retry_policy=settings.retry_policy(),
        )

    # =========================================================================
    # QUERY RUNS
    # =========================================================================

    @staticmethod
    def resolve_query(
        query: str,
        mode: Optional[QueryMode],
        subreddit: Optional[str],
    ) -> tuple[str, QueryMode, Optional[str]]:
        """Infer the mode and turn an ``r/<name> <terms>`` search into a scoped one.

        An explicit ``subreddit`` wins over a prefix in the query text.
        """
        query = query.strip()
        mode = mode or QueryMode.infer(query)
        if mode == QueryMode.SEARCH and not subreddit:
            query, subreddit = split_community_scope(query)
        return query, mode, subreddit

    @staticmethod
    def validate_facets(sort_types: list[str], mode: QueryMode) -> list[str]:
        """Check facet names and drop duplicates, keeping the first occurrence.

        Raises:
            ValueError: If the list is empty or a facet is not valid for the mode.
        """
        allowed = LISTING_FACETS if mode == QueryMode.LISTING else SEARCH_FACETS

        facets: list[str] = []
        for raw in sort_types:
            facet = raw.strip().lower()
            if facet not in allowed:
                raise ValueError(
                    f"Invalid sort type {raw!r} for {mode.value}; expected one of {sorted(allowed)}"
                )
            if facet not in facets:
                facets.append(facet)

        if not facets:
            raise ValueError("At least one sort type is required")
        return facets

    async def run_query(
        self,
        query: str,
        sort_types: list[str],
        mode: Optional[QueryMode] = None,
        subreddit: Optional[str] = None,
        persist: bool = True,
        progress: Optional[ProgressIndicator] = None,
    ) -> QueryRun:
        """Run a query under every facet and merge the results.

        Args:
            query: ``r/<name>`` (or a bare name in listing mode), search text,
                or ``r/<name> <terms>`` for a search inside that community.
            sort_types: Facets to request, one upstream call each.
            mode: Listing or search; inferred from the query when omitted.
            subreddit: Restricts a search to one community.
            persist: Replace the current-search collection with the result.
            progress: Decorative indicator shown while the run is active.

        Returns:
            QueryRun with posts sorted by timestamp, newest first.

        Raises:
            ValueError: For an empty query or invalid facets.
            CredentialError: If the API credentials are not configured.
            AuthRejected: If Reddit refuses the token request, or every facet
                was rejected.
            TransportError: If every facet failed.
            PersistenceError: If the result cannot be stored.
        """
        if not query.strip():
            raise ValueError("Query is empty")

        query, mode, subreddit = self.resolve_query(query, mode, subreddit)
        facets = self.validate_facets(sort_types, mode)

        run = QueryRun(run_id=uuid.uuid4().hex[:12], query=query, mode=mode, facets=facets)
        ctx = RunContext(run_id=run.run_id, query=query, mode=mode.value)

        if progress is not None:
            progress.start()
        try:
            token = await self.oauth.get_cached_or_refreshed_token()
            logger.info("Query run started", ctx, facets=facets)

            outcomes = await asyncio.gather(
                *(
                    self._fetch_facet(token, query, facet, mode, subreddit, None, ctx)
                    for facet in facets
                ),
                return_exceptions=True,
            )
            pages = self._collect(run, facets, outcomes, ctx)

            run.posts = sorted(merge_facet_pages(pages), key=lambda p: p.timestamp, reverse=True)

            if persist:
                self.store.replace_current_search(run.posts)
        finally:
            if progress is not None:
                progress.stop()

        self._metrics.increment(POSTS_MERGED, len(run.posts))
        self._metrics.set_gauge(LAST_RUN_POSTS, len(run.posts))
        logger.info(
            "Query run finished",
            ctx,
            posts=len(run.posts),
            failed_facets=list(run.failed_facets),
            quarantined=run.quarantined,
        )
        return run

    def _collect(
        self,
        run: QueryRun,
        facets: list[str],
        outcomes: list[Any],
        ctx: RunContext,
    ) -> list[FacetPage]:
        pages: list[FacetPage] = []
        errors: list[BaseException] = []

        for facet, outcome in zip(facets, outcomes):
            if isinstance(outcome, (TransportError, ParseError, AuthRejected)):
                self._metrics.increment(FACET_REQUESTS, labels={"facet": facet, "outcome": "error"})
                logger.warning(
                    "Facet request failed",
                    ctx.for_facet(facet),
                    exc_info=outcome,
                    error=str(outcome),
                )
                run.failed_facets[facet] = str(outcome)
                errors.append(outcome)
                continue

            if isinstance(outcome, BaseException):
                raise outcome

            self._metrics.increment(FACET_REQUESTS, labels={"facet": facet, "outcome": "ok"})
            run.cursors[facet] = outcome.after
            run.quarantined += outcome.quarantined
            pages.append(outcome)

        if not pages:
            first = errors[0]
            if isinstance(first, AuthRejected):
                raise first
            raise TransportError(
                f"All facets failed for {run.query!r}: {first}",
                status_code=getattr(first, "status_code", 0),
            ) from first

        return pages

    async def _fetch_facet(
        self,
        token: str,
        query: str,
        facet: str,
        mode: QueryMode,
        subreddit: Optional[str],
        after: Optional[str],
        ctx: RunContext,
    ) -> FacetPage:
        if mode == QueryMode.LISTING:
            listing = await self.retry_policy.run(
                self.adapter.fetch_listing, token, query, facet, after
            )
        else:
            listing = await self.retry_policy.run(
                self.adapter.search, token, query, facet, after, subreddit
            )
        return self._normalize_listing(listing, facet, ctx)

    def _normalize_listing(self, listing: RawListing, facet: str, ctx: RunContext) -> FacetPage:
        page = FacetPage(facet=facet, after=listing.after)

        for child in listing.children:
            try:
                record = self.normalizer.normalize(child, facet)
            except InvalidIdentityError as e:
                page.quarantined += 1
                logger.warning("Post quarantined", ctx.for_facet(facet), reason=str(e), payload=e.payload)
                continue
            except ParseError as e:
                page.quarantined += 1
                logger.warning("Listing item skipped", ctx.for_facet(facet), reason=str(e), payload=e.payload)
                continue

            if isinstance(record, PostRecord):
                page.posts.append(record)

        if page.quarantined:
            self._metrics.increment(POSTS_QUARANTINED, page.quarantined)
        return page

    async def iter_pages(
        self,
        query: str,
        facet: str,
        mode: Optional[QueryMode] = None,
        subreddit: Optional[str] = None,
        after: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[PaginatedResult[PostRecord]]:
        """Yield successive pages of one facet, following the ``after`` cursor.

        Stops when Reddit returns no further cursor or after ``max_pages``.
        Pages are not persisted.
        """
        query, mode, subreddit = self.resolve_query(query, mode, subreddit)
        facet = self.validate_facets([facet], mode)[0]
        ctx = RunContext(run_id=uuid.uuid4().hex[:12], query=query, mode=mode.value, facet=facet)

        pages = 0
        cursor = after
        while max_pages is None or pages < max_pages:
            token = await self.oauth.get_cached_or_refreshed_token()
            page = await self._fetch_facet(token, query, facet, mode, subreddit, cursor, ctx)
            pages += 1

            for post in page.posts:
                post.sort_type = facet

            yield PaginatedResult(
                items=page.posts,
                next_cursor=page.after,
                has_more=page.after is not None,
            )

            if not page.after:
                break
            cursor = page.after

    # =========================================================================
    # COMMENTS
    # =========================================================================

    async def fetch_comments(
        self,
        post_ref: str,
        post_title: str = "",
        subreddit: str = "",
        sort: str = "confidence",
    ) -> list[CommentRecord]:
        """Fetch, flatten and store the comment tree of one post.

        Args:
            post_ref: Post URL, bare id or ``t3_`` fullname.
            post_title: Title snapshot; taken from Reddit when empty.
            subreddit: Community name; taken from Reddit when empty.
            sort: Comment sort order.

        Returns:
            The flattened comments in pre-order.

        Raises:
            ValueError: If no post id can be found or the sort is unknown.
        """
        post_id = extract_post_id(post_ref)
        if post_id is None:
            raise ValueError(f"Cannot find a post id in {post_ref!r}")
        if sort not in COMMENT_SORTS:
            raise ValueError(f"Invalid comment sort {sort!r}; expected one of {sorted(COMMENT_SORTS)}")

        token = await self.oauth.get_cached_or_refreshed_token()
        post_echo, children = await self.retry_policy.run(
            self.adapter.fetch_comment_tree, token, post_id, sort
        )

        if post_echo:
            post_id = post_echo.get("id") or post_id
            post_title = post_title or post_echo.get("title") or ""
            subreddit = subreddit or post_echo.get("subreddit") or ""

        comments = self.flattener.flatten(
            children,
            post_id=post_id,
            subreddit=strip_subreddit_prefix(subreddit),
            post_title=post_title,
        )
        inserted = self.store.append_comments(comments)

        self._metrics.increment(COMMENTS_FLATTENED, len(comments))
        logger.info(
            "Comments fetched",
            post_id=post_id,
            comments=len(comments),
            inserted=inserted,
        )
        return comments

    # =========================================================================
    # SAVING AND REPLIES
    # =========================================================================

    def save_post(self, post: PostRecord) -> bool:
        """Copy a post into the saved collection.

        Returns:
            True if it was not saved before.

        Raises:
            InvalidIdentityError: If the post has a degenerate identity.
        """
        if post.id <= 0:
            raise InvalidIdentityError(f"Refusing to save post with identity {post.id}", payload=post.name)
        return self.store.upsert_saved([post]) > 0

    def save_from_current_search(self, post_id: int) -> bool:
        """Save a post of the latest query run.

        Raises:
            LookupError: If the post is not in the current search.
        """
        post = self.store.get_current_search_post(post_id)
        if post is None:
            raise LookupError(f"Post {post_id} is not in the current search")
        return self.save_post(post)

    async def reply(self, parent_fullname: str, text: str) -> dict[str, Any]:
        """Reply to a post or comment as the authorized user.

        Not retried: a timed-out submit may still have been posted.
        """
        if not parent_fullname.startswith(REPLY_PARENT_PREFIXES):
            raise ValueError(f"Reply target must be a t1_ or t3_ fullname, got {parent_fullname!r}")
        if not text.strip():
            raise ValueError("Reply text is empty")

        token = await self.oauth.get_cached_or_refreshed_user_token()
        created = await self.adapter.submit_comment(token, parent_fullname, text)
        logger.info("Reply posted", parent=parent_fullname, comment_id=created.get("id"))
        return created
