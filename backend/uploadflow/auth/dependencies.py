"""Authentication dependencies.

Bearer tokens are opaque: they are resolved to a user profile by asking
the Identity Provider on every request.

Usage:
    @router.post("/")
    async def create(user: CurrentUser):
        ...
"""

from typing import Annotated, Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..dependencies import get_identity_client
from ..errors import AppError, ErrorKind
from ..infrastructure.identity import IdentityProviderClient

# auto_error=False so a missing header maps onto the application taxonomy
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity: IdentityProviderClient = Depends(get_identity_client),
) -> Dict[str, Any]:
    """Resolve the bearer token to the caller's profile.

    Raises:
        AppError UNAUTHORIZED: Missing token or token rejected by the provider
        AppError IDENTITY_LOOKUP_FAILED / IDENTITY_PROVIDER_UNREACHABLE:
            Provider could not answer
    """
    if credentials is None or not credentials.credentials:
        raise AppError(ErrorKind.UNAUTHORIZED)
    return await identity.fetch_user(credentials.credentials)


def owner_id_of(user: Dict[str, Any]) -> str:
    """Ownership identity used in upload filters"""
    return str(user["id"])


CurrentUser = Annotated[Dict[str, Any], Depends(get_current_user)]
