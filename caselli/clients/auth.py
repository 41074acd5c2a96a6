"""
Bearer-token verification against the Supabase Auth API.

`GET /auth/v1/user` with the caller's access token returns the user record
when the token is valid. Successful lookups are cached briefly so a busy
chat session does not pay an auth round trip on every message.
"""

import hashlib
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx
from cachetools import TTLCache

from caselli.clients.http import TimeoutConfig, create_http_client
from caselli.config import Settings
from caselli.utils.logging import get_logger

logger = get_logger(__name__)


class AuthError(Exception):
    """The bearer token is missing, malformed, expired or revoked."""

    pass


@dataclass(frozen=True)
class AuthenticatedUser:
    id: uuid.UUID
    email: Optional[str] = None


class SupabaseAuthClient:
    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        cache_ttl_seconds: int = 60,
    ):
        anon_key = settings.supabase_anon_key or ""
        self.client = http_client or create_http_client(
            "supabase-auth",
            f"{settings.supabase_url}/auth/v1",
            TimeoutConfig(connect_timeout=5.0, read_timeout=10.0),
            headers={"apikey": anon_key},
        )
        self._cache: TTLCache = TTLCache(maxsize=4096, ttl=cache_ttl_seconds)

    async def close(self) -> None:
        await self.client.aclose()

    async def get_user(self, access_token: str) -> AuthenticatedUser:
        """
        Resolve an access token to its user.

        Raises:
            AuthError: If the auth service rejects the token or is unreachable
        """
        cache_key = hashlib.sha256(access_token.encode()).hexdigest()
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            response = await self.client.get(
                "/user", headers={"Authorization": f"Bearer {access_token}"}
            )
        except httpx.HTTPError as e:
            logger.warning("Auth service unreachable", error=str(e))
            raise AuthError("Auth service unreachable") from e

        if response.status_code != 200:
            raise AuthError(f"Token rejected with HTTP {response.status_code}")

        data = response.json()
        try:
            user = AuthenticatedUser(id=uuid.UUID(str(data["id"])), email=data.get("email"))
        except (KeyError, ValueError) as e:
            raise AuthError("Auth service returned an invalid user") from e

        self._cache[cache_key] = user
        return user
