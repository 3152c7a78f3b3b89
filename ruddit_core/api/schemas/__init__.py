"""API request and response schemas."""

from ruddit_core.api.schemas.comments import (
    CommentFetchRequest,
    CommentResponse,
    CommentUpdateRequest,
    ReplyRequest,
    ReplyResponse,
)
from ruddit_core.api.schemas.posts import (
    DeleteResponse,
    FacetCount,
    PostResponse,
    PostUpdateRequest,
    SaveResponse,
)
from ruddit_core.api.schemas.search import SearchRequest, SearchRunResponse

__all__ = [
    "CommentFetchRequest",
    "CommentResponse",
    "CommentUpdateRequest",
    "DeleteResponse",
    "FacetCount",
    "PostResponse",
    "PostUpdateRequest",
    "ReplyRequest",
    "ReplyResponse",
    "SaveResponse",
    "SearchRequest",
    "SearchRunResponse",
]
