"""Reddit provider integration.

This package contains:
- OAuth token lifecycle (service, password and interactive grants)
- API adapter
"""

from ruddit_core.providers.reddit.adapter import RedditAdapter, extract_post_id
from ruddit_core.providers.reddit.oauth import REFRESH_MARGIN_SECONDS, RedditOAuthService

__all__ = [
    "REFRESH_MARGIN_SECONDS",
    "RedditAdapter",
    "RedditOAuthService",
    "extract_post_id",
]
