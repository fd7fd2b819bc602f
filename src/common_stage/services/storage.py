"""Avatar uploads against a Supabase-style storage REST API."""

from __future__ import annotations

import asyncio
import logging

import httpx

from common_stage.core.errors import StorageError
from common_stage.core.settings import settings
from common_stage.services.profile_facts import AVATAR_PUBLIC_PREFIX

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404


def avatar_object_path(user_id: str, filename: str | None, content_type: str) -> str:
    """Return ``{user_id}/avatar.{ext}``, the one avatar slot per user.

    The extension comes from the uploaded filename, falling back to the
    image subtype of the content type.
    """
    ext = ""
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].lower()
    if not ext:
        ext = content_type.split("/", 1)[-1].lower()
    return f"{user_id}/avatar.{ext}"


class AvatarStorage:
    """Upload, replace and delete avatars in a public bucket."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        service_key: str | None = None,
        bucket: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.base_url = base_url if base_url is not None else settings.storage_base_url
        self.service_key = service_key if service_key is not None else settings.storage_service_key
        self.bucket = bucket or settings.storage_bucket
        self.timeout_seconds = timeout_seconds or settings.http_timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.enabled:
            raise StorageError("Photo uploads are not available right now")

        async with self._client_lock:
            if self._client is None:
                headers = {}
                if self.service_key:
                    headers["Authorization"] = f"Bearer {self.service_key}"
                    headers["apikey"] = self.service_key
                self._client = httpx.AsyncClient(
                    base_url=self.base_url or "",
                    timeout=httpx.Timeout(self.timeout_seconds),
                    headers=headers,
                )
        return self._client

    def public_url(self, path: str) -> str:
        """Return the public URL at which ``path`` is served."""
        return f"{(self.base_url or '').rstrip('/')}{AVATAR_PUBLIC_PREFIX}{path}"

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Store ``content`` at ``path``, overwriting any existing object.

        Returns:
            The public URL of the stored avatar

        Raises:
            StorageError: If the upload fails
        """
        client = await self._ensure_client()
        try:
            response = await client.post(
                f"/storage/v1/object/{self.bucket}/{path}",
                content=content,
                headers={"Content-Type": content_type, "x-upsert": "true"},
            )
        except httpx.HTTPError as exc:
            raise StorageError(f"Avatar upload failed: {exc}") from exc

        if response.status_code >= HTTP_BAD_REQUEST:
            logger.warning("Storage rejected upload of %s with %s", path, response.status_code)
            raise StorageError("Failed to upload photo. Please try again.")
        return self.public_url(path)

    async def delete(self, path: str) -> bool:
        """Remove the object at ``path``; a missing object is not an error."""
        client = await self._ensure_client()
        try:
            response = await client.delete(f"/storage/v1/object/{self.bucket}/{path}")
        except httpx.HTTPError as exc:
            raise StorageError(f"Avatar delete failed: {exc}") from exc

        if response.status_code == HTTP_NOT_FOUND:
            return False
        if response.status_code >= HTTP_BAD_REQUEST:
            raise StorageError(f"Storage responded with {response.status_code}")
        return True

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _AvatarStorageSingleton:
    _instance: AvatarStorage | None = None

    @classmethod
    def get_instance(cls) -> AvatarStorage:
        if cls._instance is None:
            cls._instance = AvatarStorage()
        return cls._instance


def get_avatar_storage() -> AvatarStorage:
    """Return the process-wide avatar storage client."""
    return _AvatarStorageSingleton.get_instance()
