"""Query run API routes."""

from fastapi import APIRouter, HTTPException, status

from ruddit_core.api.deps import OrchestratorDep, StoreDep
from ruddit_core.api.schemas.posts import DeleteResponse, PostResponse
from ruddit_core.api.schemas.search import SearchRequest, SearchRunResponse


router = APIRouter(prefix="/search", tags=["search"])


@router.post("", response_model=SearchRunResponse)
async def run_search(
    request: SearchRequest,
    orchestrator: OrchestratorDep,
) -> SearchRunResponse:
    """Run a query under the requested facets.

    The merged result replaces the current search. Facets that fail are
    listed in ``failed_facets``; the request only fails when all of them do.
    """
    try:
        run = await orchestrator.run_query(
            request.query,
            request.sort_types,
            mode=request.mode,
            subreddit=request.subreddit,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SearchRunResponse(
        run_id=run.run_id,
        query=run.query,
        mode=run.mode,
        facets=run.facets,
        failed_facets=run.failed_facets,
        quarantined=run.quarantined,
        cursors=run.cursors,
        total=len(run.posts),
        posts=[PostResponse.model_validate(p) for p in run.posts],
    )


@router.get("/current", response_model=list[PostResponse])
async def get_current_search(store: StoreDep) -> list[PostResponse]:
    """Get the results of the latest query run, newest first."""
    return [PostResponse.model_validate(p) for p in store.get_current_search()]


@router.delete("/current", response_model=DeleteResponse)
async def clear_current_search(store: StoreDep) -> DeleteResponse:
    return DeleteResponse(deleted=store.clear_current_search())
