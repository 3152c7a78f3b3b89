"""Provider integrations for Ruddit.

This package contains provider-specific implementations:
- Base: canonical records, enums and pagination types
- Reddit: OAuth token lifecycle and API adapter
"""

from ruddit_core.providers.base import (
    CommentRecord,
    Intent,
    ItemKind,
    PaginatedResult,
    PostRecord,
    QueryMode,
    RawListing,
)

__all__ = [
    "CommentRecord",
    "Intent",
    "ItemKind",
    "PaginatedResult",
    "PostRecord",
    "QueryMode",
    "RawListing",
]
