"""Login flow and current-user endpoints.

GET /authenticate  - redirect to the Identity Provider with a fresh state
GET /oauth/code    - provider callback: exchange the code for a token
GET /me            - profile of the bearer token's owner
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from ..config import Settings, get_settings
from ..dependencies import get_identity_client, get_oauth_state_store
from ..errors import AppError, ErrorKind
from ..infrastructure.identity import IdentityProviderClient
from .dependencies import CurrentUser
from .oauth_state import OAuthStateStore
from .schemas import MeResponse, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Authentication"])


def choose_return_url(requested: Optional[str], config: Settings) -> Optional[str]:
    """Allow-listed requested URL, else the configured default (may be None)"""
    if requested and requested in config.allowed_return_urls:
        return requested
    if requested:
        logger.warning(f"Ignoring return URL that is not allow-listed: {requested}")
    return config.OAUTH_REDIRECT_URL


def with_token(return_url: str, token: str) -> str:
    separator = "&" if "?" in return_url else "?"
    return f"{return_url}{separator}{urlencode({'token': token})}"


@router.get("/authenticate", status_code=302)
def authenticate(
    return_url: Optional[str] = Query(None, alias="returnUrl"),
    identity: IdentityProviderClient = Depends(get_identity_client),
    state_store: OAuthStateStore = Depends(get_oauth_state_store),
    config: Settings = Depends(get_settings),
):
    """Start the login flow."""
    state = state_store.issue(choose_return_url(return_url, config))
    return RedirectResponse(identity.authorize_url(state), status_code=302)


@router.get("/oauth/code", response_model=TokenResponse)
async def oauth_code(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    identity: IdentityProviderClient = Depends(get_identity_client),
    state_store: OAuthStateStore = Depends(get_oauth_state_store),
):
    """Identity Provider callback.

    The state must have been issued by /authenticate and not used before.
    With a return URL the browser is sent there with ?token=...; otherwise
    the token is returned as JSON.
    """
    found, return_url = state_store.consume(state or "")
    if not found:
        logger.warning("OAuth callback with unknown, reused or expired state")
        raise AppError(ErrorKind.UNAUTHORIZED)
    if not code:
        raise AppError(ErrorKind.UNAUTHORIZED)

    token = await identity.exchange_code(code)

    if return_url:
        return RedirectResponse(with_token(return_url, token), status_code=302)
    return TokenResponse(token=token)


@router.get("/me", response_model=MeResponse)
async def me(user: CurrentUser):
    return MeResponse(user=user)
