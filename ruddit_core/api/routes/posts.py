"""Saved post API routes."""

from typing import Optional, Union

from fastapi import APIRouter, HTTPException, Query, Response, status

from ruddit_core.api.deps import OrchestratorDep, StoreDep
from ruddit_core.api.schemas.posts import (
    DeleteResponse,
    FacetCount,
    PostResponse,
    PostSaveRequest,
    PostUpdateRequest,
    SaveResponse,
)
from ruddit_core.providers.base import PostRecord


router = APIRouter(prefix="/posts", tags=["posts"])


@router.get("", response_model=list[PostResponse])
async def list_saved_posts(
    store: StoreDep,
    limit: Optional[int] = Query(default=None, ge=1, le=10000, description="Maximum posts"),
    sort_type: Optional[str] = Query(default=None, description="Only posts seen under this facet"),
    subreddit: Optional[str] = Query(default=None, description="Only posts of this subreddit"),
    q: Optional[str] = Query(default=None, min_length=1, description="Substring of title, subreddit or facets"),
) -> list[PostResponse]:
    """List saved posts, newest first.

    Filters are exclusive and checked in order: ``q``, ``sort_type``,
    ``subreddit``.
    """
    if q:
        posts = store.search_posts(q, limit=limit)
    elif sort_type:
        posts = store.get_by_facet(sort_type, limit=limit)
    elif subreddit:
        posts = store.get_by_subreddit(subreddit, limit=limit)
    elif limit is not None:
        posts = store.get_recent(limit)
    else:
        posts = store.get_all_saved()

    return [PostResponse.model_validate(p) for p in posts]


@router.get("/all", response_model=list[PostResponse])
async def list_all_posts(store: StoreDep) -> list[PostResponse]:
    """Saved and current-search posts, one per identity."""
    return [PostResponse.model_validate(p) for p in store.get_all_posts()]


@router.get("/facets", response_model=list[FacetCount])
async def count_facets(store: StoreDep) -> list[FacetCount]:
    return [FacetCount(facet=f, count=c) for f, c in store.count_saved_by_facet()]


@router.post("", response_model=SaveResponse, status_code=status.HTTP_201_CREATED)
async def save_post(post: PostSaveRequest, orchestrator: OrchestratorDep) -> SaveResponse:
    """Save a post record; an already saved post is left untouched."""
    saved = orchestrator.save_post(PostRecord(**post.model_dump()))
    return SaveResponse(id=post.id, saved=saved)


@router.post("/{post_id}/save", response_model=SaveResponse)
async def save_from_current_search(post_id: int, orchestrator: OrchestratorDep) -> SaveResponse:
    """Save a post of the latest query run."""
    try:
        saved = orchestrator.save_from_current_search(post_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return SaveResponse(id=post_id, saved=saved)


@router.get("/{post_id}", response_model=PostResponse)
async def get_saved_post(post_id: int, store: StoreDep) -> PostResponse:
    post = store.get_saved(post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return PostResponse.model_validate(post)


@router.patch(
    "/{post_id}",
    response_model=PostResponse,
    responses={204: {"description": "No saved post with this id; nothing changed"}},
)
async def update_saved_post(
    post_id: int,
    request: PostUpdateRequest,
    store: StoreDep,
) -> Union[PostResponse, Response]:
    """Update notes, assignee, engagement or interest of a saved post.

    Updating an id that is not saved is a no-op answered with 204.
    """
    if request.notes is not None:
        store.update_notes(post_id, request.notes)
    if request.assignee is not None:
        store.update_assignee(post_id, request.assignee)
    if request.engaged is not None:
        store.update_engaged(post_id, request.engaged)
    if request.interest is not None:
        store.update_interest(post_id, request.interest)

    post = store.get_saved(post_id)
    if post is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return PostResponse.model_validate(post)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_saved_post(post_id: int, store: StoreDep) -> None:
    """Delete a saved post; deleting an unknown id is not an error."""
    store.remove_saved(post_id)


@router.delete("", response_model=DeleteResponse)
async def clear_saved_posts(store: StoreDep) -> DeleteResponse:
    """Delete every saved post."""
    return DeleteResponse(deleted=store.clear_saved())
