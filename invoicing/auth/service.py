"""Bearer-token authentication against Supabase Auth.

The dashboard signs users in with Supabase and sends the access token as
``Authorization: Bearer <token>``. Tokens are verified by asking the auth
server who they belong to.

API reference: https://supabase.com/docs/reference/api/auth
"""

import logging
from functools import lru_cache

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoicing.shared.config import Settings, get_settings
from invoicing.shared.errors import AuthError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class AuthUser(BaseModel):
    """Authenticated user resolved from a bearer token."""

    id: str
    email: str = ""
    name: str = ""


class AuthService:
    """Verifies access tokens with the Supabase auth server."""

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self._client = client or httpx.Client(timeout=settings.http_timeout_seconds)

    def is_available(self) -> bool:
        return bool(self.settings.supabase_url and self.settings.supabase_anon_key)

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
        wait=wait_exponential_jitter(initial=1, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _fetch_user(self, token: str) -> httpx.Response:
        return self._client.get(
            f"{self.settings.supabase_url.rstrip('/')}/auth/v1/user",
            headers={
                "apikey": self.settings.supabase_anon_key,
                "Authorization": f"Bearer {token}",
            },
        )

    def verify_token(self, token: str) -> AuthUser:
        """Resolve the user an access token belongs to.

        Args:
            token: Access token from the Authorization header

        Returns:
            The authenticated user

        Raises:
            AuthError: Token is empty, expired or auth is not configured
        """
        if not token:
            raise AuthError("Missing bearer token")
        if not self.is_available():
            raise AuthError("Authentication is not configured")

        try:
            response = self._fetch_user(token)
        except httpx.HTTPError as e:
            logger.error(f"Auth server unreachable: {e}")
            raise AuthError("Unable to verify token") from e

        if response.status_code != 200:
            logger.info(f"Token rejected by auth server ({response.status_code})")
            raise AuthError("Invalid or expired token")

        data = response.json()
        if not data.get("id"):
            raise AuthError("Invalid or expired token")
        metadata = data.get("user_metadata") or {}
        return AuthUser(
            id=data["id"],
            email=data.get("email") or "",
            name=metadata.get("full_name") or metadata.get("name") or "",
        )


@lru_cache
def get_auth_service() -> AuthService:
    return AuthService(get_settings())


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),  # noqa: B008
    auth: AuthService = Depends(get_auth_service),  # noqa: B008
) -> AuthUser:
    """FastAPI dependency returning the caller, or 401 when unauthenticated."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError("Missing bearer token")
    return auth.verify_token(credentials.credentials)
