"""Identity Provider client (GitLab-compatible OAuth2 + user API).

Exchanges authorization codes for access tokens and resolves bearer tokens
to user profiles. Every failure is mapped onto the application error
taxonomy; raw upstream errors are only logged.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from ...errors import AppError, ErrorKind

logger = logging.getLogger(__name__)


class IdentityProviderClient:
    """Async client for the external Identity Provider.

    Example:
        client = IdentityProviderClient(
            oauth_base_url="https://gitlab.example.com/oauth",
            api_base_url="https://gitlab.example.com/api/v4",
            client_id="...",
            client_secret="...",
            redirect_uri="https://uploads.example.com/oauth/code",
        )
        token = await client.exchange_code(code)
        user = await client.fetch_user(token)
    """

    def __init__(
        self,
        oauth_base_url: str,
        api_base_url: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the identity provider client.

        Args:
            oauth_base_url: OAuth endpoints base (…/oauth)
            api_base_url: REST API base (…/api/v4)
            client_id: OAuth application id
            client_secret: OAuth application secret
            redirect_uri: Callback URL registered with the provider
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self.oauth_base_url = oauth_base_url.rstrip("/")
        self.api_base_url = api_base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def authorize_url(self, state: str) -> str:
        """Build the provider authorize URL for the given anti-forgery state."""
        query = urlencode({
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "state": state,
        })
        return f"{self.oauth_base_url}/authorize?{query}"

    async def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for an access token.

        Raises:
            AppError IDENTITY_PROVIDER_UNREACHABLE: Transport failure
            AppError UNABLE_TO_PARSE_RESPONSE: Response body is not JSON
            AppError IDENTITY_TOKEN_MISSING: No access_token in the response
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.oauth_base_url}/token",
                    data={
                        "code": code,
                        "grant_type": "authorization_code",
                        "redirect_uri": self.redirect_uri,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                    },
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Unable to contact identity provider for token exchange: {e}")
            raise AppError(ErrorKind.IDENTITY_PROVIDER_UNREACHABLE)

        try:
            payload = response.json()
        except ValueError:
            logger.error(
                f"Token endpoint returned non-JSON body (status={response.status_code})"
            )
            raise AppError(ErrorKind.UNABLE_TO_PARSE_RESPONSE)

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            logger.warning(f"Token endpoint returned no access token (status={response.status_code})")
            raise AppError(ErrorKind.IDENTITY_TOKEN_MISSING)

        return access_token

    async def fetch_user(self, token: Optional[str]) -> Dict[str, Any]:
        """Resolve a bearer token to the user's profile.

        Raises:
            AppError UNAUTHORIZED: Missing token or provider answered 401
            AppError IDENTITY_LOOKUP_FAILED: Any other non-200 answer
            AppError IDENTITY_PROVIDER_UNREACHABLE: Transport failure
            AppError UNABLE_TO_PARSE_RESPONSE: Profile body is not a JSON object
        """
        if not token:
            raise AppError(ErrorKind.UNAUTHORIZED)

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.api_base_url}/user",
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Unable to contact identity provider for user lookup: {e}")
            raise AppError(ErrorKind.IDENTITY_PROVIDER_UNREACHABLE)

        if response.status_code == 401:
            raise AppError(ErrorKind.UNAUTHORIZED)
        if response.status_code != 200:
            logger.warning(f"User lookup failed with status {response.status_code}")
            raise AppError(ErrorKind.IDENTITY_LOOKUP_FAILED)

        try:
            user = response.json()
        except ValueError:
            logger.error("User endpoint returned non-JSON body")
            raise AppError(ErrorKind.UNABLE_TO_PARSE_RESPONSE)

        if not isinstance(user, dict) or user.get("id") is None:
            logger.error("User endpoint returned a profile without an id")
            raise AppError(ErrorKind.UNABLE_TO_PARSE_RESPONSE)

        return user
