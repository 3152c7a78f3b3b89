"""Comment API schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class CommentFetchRequest(BaseModel):
    """Fetch the comment tree of one post."""

    url: str = Field(..., min_length=1, description="Post URL, id or t3_ fullname")
    title: str = Field(default="", description="Post title snapshot")
    subreddit: str = Field(default="", description="Community of the post")
    sort: str = Field(default="confidence", description="Comment sort order")


class CommentResponse(BaseModel):
    """A flattened comment."""

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

    model_config = {"from_attributes": True}


class CommentUpdateRequest(BaseModel):
    """Changes to the user-editable fields of a comment."""

    notes: Optional[str] = None
    assignee: Optional[str] = None
    engaged: Optional[bool] = None


class ReplyRequest(BaseModel):
    """Reply to a post or comment."""

    parent: str = Field(..., description="Fullname of the target (t1_... or t3_...)")
    text: str = Field(..., min_length=1, description="Markdown body of the reply")


class ReplyResponse(BaseModel):
    """The created reply."""

    id: Optional[str] = None
    name: Optional[str] = None
    permalink: Optional[str] = None
