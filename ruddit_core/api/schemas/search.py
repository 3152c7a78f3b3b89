"""Search API schemas."""

from typing import Optional

from pydantic import BaseModel, Field

from ruddit_core.api.schemas.posts import PostResponse
from ruddit_core.providers.base import QueryMode


class SearchRequest(BaseModel):
    """Request schema for a query run."""

    query: str = Field(..., min_length=1, description="r/<name> for a listing, or search text")
    sort_types: list[str] = Field(
        default_factory=lambda: ["hot"],
        min_length=1,
        description="Facets to request, e.g. ['hot', 'new']",
    )
    mode: Optional[QueryMode] = Field(
        default=None,
        description="'listing' or 'search'; inferred from the query when omitted",
    )
    subreddit: Optional[str] = Field(
        default=None,
        description="Restrict a search to this subreddit",
    )


class SearchRunResponse(BaseModel):
    """Response schema for a query run."""

    run_id: str
    query: str
    mode: QueryMode
    facets: list[str]
    failed_facets: dict[str, str] = Field(
        default_factory=dict, description="Facets that failed, with the error"
    )
    quarantined: int = Field(0, description="Items dropped for an unusable identity")
    cursors: dict[str, Optional[str]] = Field(
        default_factory=dict, description="Continuation cursor per facet"
    )
    total: int
    posts: list[PostResponse]
