"""Comment API routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from ruddit_core.api.deps import OrchestratorDep, StoreDep
from ruddit_core.api.schemas.comments import (
    CommentFetchRequest,
    CommentResponse,
    CommentUpdateRequest,
    ReplyRequest,
    ReplyResponse,
)
from ruddit_core.api.schemas.posts import DeleteResponse


router = APIRouter(prefix="/comments", tags=["comments"])


@router.post("/fetch", response_model=list[CommentResponse])
async def fetch_comments(
    request: CommentFetchRequest,
    orchestrator: OrchestratorDep,
) -> list[CommentResponse]:
    """Fetch a post's comment tree, store it and return it flattened."""
    try:
        comments = await orchestrator.fetch_comments(
            request.url,
            post_title=request.title,
            subreddit=request.subreddit,
            sort=request.sort,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return [CommentResponse.model_validate(c) for c in comments]


@router.get("", response_model=list[CommentResponse])
async def list_comments(
    store: StoreDep,
    post_id: Optional[str] = Query(default=None, description="Base-36 id of the post"),
) -> list[CommentResponse]:
    if post_id:
        comments = store.get_comments_for_post(post_id)
    else:
        comments = store.get_all_comments()
    return [CommentResponse.model_validate(c) for c in comments]


@router.patch("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_comment(
    comment_id: str,
    request: CommentUpdateRequest,
    store: StoreDep,
) -> None:
    """Update notes, assignee or engagement of a stored comment.

    An unknown comment id is a no-op.
    """
    if request.notes is not None:
        store.update_comment_notes(comment_id, request.notes)
    if request.assignee is not None:
        store.update_comment_assignee(comment_id, request.assignee)
    if request.engaged is not None:
        store.update_comment_engaged(comment_id, request.engaged)


@router.delete("", response_model=DeleteResponse)
async def clear_comments(store: StoreDep) -> DeleteResponse:
    return DeleteResponse(deleted=store.clear_comments())


@router.post("/reply", response_model=ReplyResponse)
async def reply(request: ReplyRequest, orchestrator: OrchestratorDep) -> ReplyResponse:
    """Reply to a post or comment as the authorized Reddit user."""
    try:
        created = await orchestrator.reply(request.parent, request.text)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ReplyResponse(
        id=created.get("id"),
        name=created.get("name"),
        permalink=created.get("permalink"),
    )
