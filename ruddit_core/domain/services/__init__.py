"""Domain services for Ruddit.

The query orchestrator lives in ``ruddit_core.domain.services.query`` and
is imported from there; it depends on the provider package, which itself
uses the token cache defined here.
"""

from ruddit_core.domain.services.comment_tree import CommentTreeFlattener
from ruddit_core.domain.services.credentials import TokenCache
from ruddit_core.domain.services.normalizer import (
    CommentContext,
    RecordNormalizer,
    calculate_intent,
    format_timestamp,
    parse_post_identity,
)
from ruddit_core.domain.services.store import PostStore

__all__ = [
    "CommentContext",
    "CommentTreeFlattener",
    "PostStore",
    "RecordNormalizer",
    "TokenCache",
    "calculate_intent",
    "format_timestamp",
    "parse_post_identity",
]
