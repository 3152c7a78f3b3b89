"""Reddit API adapter.

Thin HTTP layer over the Reddit OAuth API. It returns raw listing
children and comment trees; mapping to canonical records is done by the
normalizer.

Usage:
    adapter = RedditAdapter(user_agent="Ruddit/0.1")

    listing = await adapter.fetch_listing(token, "r/rust", "hot")
    listing = await adapter.search(token, "async runtime", "new", after=listing.after)
    post, children = await adapter.fetch_comment_tree(token, "abc123", "confidence")
"""

import re
from typing import Any, Callable, Optional

import httpx

from ruddit_core.errors import AuthRejected, ParseError, TransportError
from ruddit_core.observability import get_collector, get_logger
from ruddit_core.observability.metrics import UPSTREAM_LATENCY
from ruddit_core.providers.base import RawListing

logger = get_logger(__name__)


POST_URL_PATTERN = re.compile(
    r"(?:reddit\.com/r/[^/]+/comments/"
    r"|reddit\.com/comments/"
    r"|reddit\.com/gallery/"
    r"|reddit\.com/r/[^/]+/s/"
    r"|redd\.it/"
    r"|i\.redd\.it/)"
    r"([a-zA-Z0-9]+)"
)
BARE_ID_PATTERN = re.compile(r"^(?:t3_)?([a-z0-9]+)$", re.IGNORECASE)


def extract_post_id(url: str) -> Optional[str]:
    """Extract the base-36 post id from a Reddit URL.

    Accepts full and short links, a bare id or a ``t3_`` fullname.

    Args:
        url: Post URL or id.

    Returns:
        The post id, or None if nothing recognizable was found.
    """
    url = url.strip()
    match = POST_URL_PATTERN.search(url)
    if match:
        return match.group(1)

    match = BARE_ID_PATTERN.match(url)
    if match:
        return match.group(1)

    return None


def strip_subreddit_prefix(name: str) -> str:
    name = name.strip()
    for prefix in ("/r/", "r/"):
        if name.lower().startswith(prefix):
            name = name[len(prefix):]
            break
    return name.strip("/")


class RedditAdapter:
    """HTTP client for the Reddit endpoints used by the ingestion pipeline.

    Every call takes the bearer token explicitly; the adapter holds no
    credentials of its own.
    """

    BASE_URL = "https://oauth.reddit.com"

    def __init__(
        self,
        user_agent: str,
        timeout: float = 30.0,
        listing_limit: int = 100,
        comment_limit: int = 500,
        search_time_filter: str = "all",
        client_factory: Optional[Callable[..., httpx.AsyncClient]] = None,
    ):
        """Initialize the Reddit adapter.

        Args:
            user_agent: User-Agent string for API requests.
            timeout: Per-request timeout in seconds.
            listing_limit: Page size for listings and searches.
            comment_limit: Maximum comments requested per tree.
            search_time_filter: ``t`` parameter of searches.
            client_factory: Builds the httpx client; defaults to httpx.AsyncClient.
        """
        self.user_agent = user_agent
        self.timeout = timeout
        self.listing_limit = listing_limit
        self.comment_limit = comment_limit
        self.search_time_filter = search_time_filter
        self.client_factory = client_factory
        self._metrics = get_collector()

    @property
    def provider_id(self) -> str:
        """Return the provider identifier."""
        return "reddit"

    def _get_headers(self, token: str) -> dict[str, str]:
        """Get headers for API requests."""
        return {
            "Authorization": f"Bearer {token}",
            "User-Agent": self.user_agent,
        }

    def _client(self) -> httpx.AsyncClient:
        factory = self.client_factory or httpx.AsyncClient
        return factory(timeout=self.timeout)

    async def _api_request(
        self,
        method: str,
        endpoint: str,
        token: str,
        params: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Make an API request and decode the JSON body.

        Args:
            method: HTTP method (GET, POST).
            endpoint: API endpoint path.
            token: Bearer token.
            params: Query parameters.
            data: Form body for POST requests.

        Returns:
            The decoded JSON response.

        Raises:
            AuthRejected: On 401/403.
            TransportError: On network failure or any other HTTP error.
            ParseError: If the body is not JSON.
        """
        url = f"{self.BASE_URL}{endpoint}"

        try:
            with self._metrics.timer(UPSTREAM_LATENCY, {"method": method}):
                async with self._client() as client:
                    if method == "GET":
                        response = await client.get(
                            url, headers=self._get_headers(token), params=params
                        )
                    else:
                        response = await client.request(
                            method, url, headers=self._get_headers(token), params=params, data=data
                        )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {endpoint} failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthRejected(
                f"{method} {endpoint} rejected with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            raise TransportError(
                f"{method} {endpoint} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                retry_after=self._retry_after(response),
            )

        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"{method} {endpoint} returned invalid JSON", payload=response.text) from e

    def _retry_after(self, response: httpx.Response) -> Optional[int]:
        value = response.headers.get("Retry-After")
        if not isinstance(value, str):
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    # =========================================================================
    # LISTINGS
    # =========================================================================

    async def fetch_listing(
        self,
        token: str,
        subreddit: str,
        sort: str,
        after: Optional[str] = None,
    ) -> RawListing:
        """Fetch one page of a subreddit listing.

        Args:
            token: Bearer token.
            subreddit: Subreddit name (with or without r/ prefix).
            sort: Listing sort - 'hot', 'new', 'top', 'rising'.
            after: Continuation cursor from the previous page.
        """
        name = strip_subreddit_prefix(subreddit)
        if not name:
            raise ValueError("Subreddit name is empty")

        params: dict[str, Any] = {"limit": self.listing_limit}
        if after:
            params["after"] = after

        data = await self._api_request("GET", f"/r/{name}/{sort}", token, params)
        return self._parse_listing(data)

    async def search(
        self,
        token: str,
        query: str,
        sort: str,
        after: Optional[str] = None,
        subreddit: Optional[str] = None,
    ) -> RawListing:
        """Search posts, site-wide or inside one subreddit.

        Args:
            token: Bearer token.
            query: Free-text search term.
            sort: Search sort - 'relevance', 'hot', 'top', 'new', 'comments'.
            after: Continuation cursor from the previous page.
            subreddit: Restrict the search to this subreddit.
        """
        params: dict[str, Any] = {
            "q": query,
            "sort": sort,
            "limit": self.listing_limit,
            "t": self.search_time_filter,
            "type": "link",
        }
        if after:
            params["after"] = after

        endpoint = "/search"
        if subreddit:
            endpoint = f"/r/{strip_subreddit_prefix(subreddit)}/search"
            params["restrict_sr"] = 1

        data = await self._api_request("GET", endpoint, token, params)
        return self._parse_listing(data)

    # =========================================================================
    # COMMENTS
    # =========================================================================

    async def fetch_comment_tree(
        self,
        token: str,
        post_id: str,
        sort: str = "confidence",
    ) -> tuple[Optional[dict[str, Any]], list[dict[str, Any]]]:
        """Fetch a post and its comment tree.

        Returns:
            Tuple of (post data echoed by Reddit or None, top-level comment
            children). Both are empty when the response is not the usual
            two-element array.
        """
        if post_id.startswith("t3_"):
            post_id = post_id[3:]

        params = {"sort": sort, "limit": self.comment_limit}
        data = await self._api_request("GET", f"/comments/{post_id}", token, params)

        # Response is a list: [post_listing, comments_listing]
        if not isinstance(data, list) or len(data) < 2:
            logger.warning("Comment response is not a two-element array", post_id=post_id)
            return None, []

        post_children = self._children_of(data[0])
        post_echo = None
        if post_children and isinstance(post_children[0], dict):
            post_echo = post_children[0].get("data")

        return post_echo, self._children_of(data[1])

    async def submit_comment(self, token: str, parent_fullname: str, text: str) -> dict[str, Any]:
        """Post a reply to a post (``t3_``) or comment (``t1_``).

        Requires a user token with the ``submit`` scope.

        Returns:
            The created comment's data, empty if Reddit did not echo it.
        """
        data = await self._api_request(
            "POST",
            "/api/comment",
            token,
            data={"thing_id": parent_fullname, "text": text, "api_type": "json"},
        )

        body = data.get("json", {}) if isinstance(data, dict) else {}
        errors = body.get("errors") or []
        if errors:
            raise TransportError(f"Reply rejected: {errors}", status_code=400)

        things = body.get("data", {}).get("things", [])
        if things and isinstance(things[0], dict):
            return things[0].get("data", {})
        return {}

    # =========================================================================
    # PARSING HELPERS
    # =========================================================================

    def _children_of(self, listing: Any) -> list[dict[str, Any]]:
        if not isinstance(listing, dict):
            return []
        children = listing.get("data", {}).get("children", [])
        return children if isinstance(children, list) else []

    def _parse_listing(self, data: Any) -> RawListing:
        if not isinstance(data, dict) or not isinstance(data.get("data"), dict):
            raise ParseError("Listing response has no data object", payload=data)

        children = data["data"].get("children")
        if not isinstance(children, list):
            raise ParseError("Listing response has no children", payload=data)

        return RawListing(children=children, after=data["data"].get("after"))
