"""Post API schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class PostResponse(BaseModel):
    """A canonical post record."""

    id: int = Field(..., description="Post identity (base-36 id parsed as integer)")
    timestamp: int = Field(..., description="Creation time, epoch seconds")
    formatted_date: str
    title: str
    url: str
    permalink: str
    subreddit: str
    sort_type: str = Field(..., description="Comma-joined facets the post was seen under")
    name: str = Field(..., description="Reddit fullname (t3_...)")
    author: str
    score: int
    is_self: bool
    num_comments: int
    intent: str = Field(..., description="High, Medium or Low")
    relevance_score: int = 0
    selftext: Optional[str] = None
    thumbnail: Optional[str] = None
    date_added: int = 0
    notes: str = ""
    assignee: str = ""
    engaged: bool = False
    interest: int = 0

    model_config = {"from_attributes": True}


class PostSaveRequest(PostResponse):
    """A post record sent by the client to be saved."""

    id: int = Field(..., gt=0, description="Post identity; 0 and negatives are never stored")


class PostUpdateRequest(BaseModel):
    """Changes to the user-editable fields of a saved post."""

    notes: Optional[str] = Field(default=None, description="Free-text notes")
    assignee: Optional[str] = Field(default=None, description="Who follows up")
    engaged: Optional[bool] = Field(default=None, description="Whether the post was engaged with")
    interest: Optional[int] = Field(default=None, ge=0, description="Interest level")


class SaveResponse(BaseModel):
    """Outcome of a save."""

    id: int
    saved: bool = Field(..., description="False if the post was already saved")


class FacetCount(BaseModel):
    """Number of saved posts under one facet."""

    facet: str
    count: int


class DeleteResponse(BaseModel):
    """Number of deleted rows."""

    deleted: int
