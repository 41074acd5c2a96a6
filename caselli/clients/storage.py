"""
Object storage client (Supabase Storage REST API).

Uploads use the service-role key; downloads happen through signed URLs so
the bucket itself stays private.
"""

from typing import Optional
from urllib.parse import quote

import httpx

from caselli.clients.http import TimeoutConfig, create_http_client
from caselli.config import Settings
from caselli.utils.logging import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Upload or signing failed."""

    pass


class StorageClient:
    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = settings.supabase_url
        self.bucket = settings.storage_bucket
        service_key = settings.supabase_service_role_key or ""
        self.client = http_client or create_http_client(
            "storage",
            f"{settings.supabase_url}/storage/v1",
            TimeoutConfig(read_timeout=30.0),
            headers={"Authorization": f"Bearer {service_key}", "apikey": service_key},
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def upload(self, path: str, content: bytes, content_type: str) -> None:
        try:
            response = await self.client.post(
                f"/object/{self.bucket}/{quote(path)}",
                content=content,
                headers={"Content-Type": content_type, "x-upsert": "true"},
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Upload failed: {e}") from e

        if response.status_code >= 400:
            logger.warning("Storage upload rejected", status_code=response.status_code, path=path)
            raise StorageError(f"Upload failed with HTTP {response.status_code}")

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """Return an absolute, time-limited download URL."""
        try:
            response = await self.client.post(
                f"/object/sign/{self.bucket}/{quote(path)}",
                json={"expiresIn": expires_in},
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Signing failed: {e}") from e

        if response.status_code >= 400:
            raise StorageError(f"Signing failed with HTTP {response.status_code}")

        data = response.json()
        signed = data.get("signedURL") or data.get("signedUrl")
        if not signed:
            raise StorageError("Storage did not return a signed URL")
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"
