"""Reddit authorization API routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from ruddit_core.api.deps import OAuthServiceDep


router = APIRouter(prefix="/auth/reddit", tags=["reddit", "auth"])


class AuthorizeResponse(BaseModel):
    """Where to send the user to authorize the app."""

    authorization_url: str
    state: str


class AuthResultResponse(BaseModel):
    """Outcome of an authorization."""

    success: bool
    scope: Optional[str] = None


@router.get("/authorize", response_model=AuthorizeResponse)
async def authorize(oauth: OAuthServiceDep) -> AuthorizeResponse:
    """Start the interactive authorization flow."""
    url, state = oauth.generate_auth_url()
    return AuthorizeResponse(authorization_url=url, state=state)


@router.get("/callback", response_model=AuthResultResponse)
async def callback(
    oauth: OAuthServiceDep,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
) -> AuthResultResponse:
    """Complete the interactive flow with the code Reddit sent back."""
    if error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Authorization denied: {error}",
        )

    if not code or not state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing code or state",
        )

    if not oauth.validate_state(state):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired state",
        )

    tokens = await oauth.exchange_code(code)
    return AuthResultResponse(success=True, scope=tokens.get("scope"))


@router.post("/password", response_model=AuthResultResponse)
async def password_grant(oauth: OAuthServiceDep) -> AuthResultResponse:
    """Get a user token with the configured username and password."""
    await oauth.get_user_token()
    return AuthResultResponse(success=True)


@router.delete("/tokens", status_code=status.HTTP_204_NO_CONTENT)
async def forget_tokens(oauth: OAuthServiceDep) -> None:
    """Forget every cached token, including the refresh token."""
    oauth.clear_tokens()
