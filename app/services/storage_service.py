"""Storage service for handling Supabase storage operations."""

import posixpath
from typing import Any, Dict, List, Optional, Sequence

import httpx

from app.core.config import settings
from app.core.exceptions import DuplicateFileNameError, StorageError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _is_duplicate(response: httpx.Response) -> bool:
    text = response.text or ""
    return response.status_code == 409 or "Duplicate" in text or "already exists" in text


class StorageService:
    """File store keyed by path, backed by the Supabase Storage REST API."""

    def __init__(self, bucket: Optional[str] = None):
        self.url = settings.supabase_url
        self.bucket = bucket or settings.storage_bucket
        self.service_role_key = settings.supabase_service_role_key
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    async def upload_file(
        self,
        content: bytes,
        path: str,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        """Upload bytes to ``path``. Never overwrites an existing object.

        Raises:
            DuplicateFileNameError: If an object already exists at ``path``.
            StorageError: If the upload fails.
        """
        upload_url = f"{self.base_api_url}/object/{self.bucket}/{path}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": content_type, "x-upsert": "false"},
                    content=content,
                    timeout=settings.http_timeout
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading file to Supabase: {str(e)}", exc_info=True)
            raise StorageError(f"Storage upload error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to Supabase: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code}
            )
            if _is_duplicate(response):
                raise DuplicateFileNameError(f"File already exists: {path}")
            raise StorageError(f"Upload failed: {response.text}")

        return response.json()

    async def download_file(self, path: str) -> bytes:
        """Download the object at ``path``.

        Raises:
            StorageError: If the object cannot be fetched.
        """
        url = f"{self.base_api_url}/object/{self.bucket}/{path}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, headers=self.headers, timeout=settings.http_timeout)
        except httpx.HTTPError as e:
            raise StorageError(f"Storage download error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to download file: {response.text}",
                extra={"path": path, "status_code": response.status_code}
            )
            raise StorageError(f"Download failed for {path}: {response.status_code}")
        return response.content

    async def list_files(
        self, prefix: str, search: Optional[str] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        """List objects directly under ``prefix``, optionally filtered by a name search."""
        url = f"{self.base_api_url}/object/list/{self.bucket}"
        body: Dict[str, Any] = {"prefix": prefix, "limit": limit, "offset": 0}
        if search:
            body["search"] = search

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url, headers=self.headers, json=body, timeout=settings.http_timeout
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Storage list error: {str(e)}", original_error=e)

        if response.status_code != 200:
            raise StorageError(f"List failed for {prefix}: {response.text}")
        return response.json() or []

    async def file_exists(self, path: str) -> bool:
        folder, name = posixpath.split(path)
        entries = await self.list_files(folder, search=name)
        return any(entry.get("name") == name for entry in entries)

    async def move_file(self, source: str, destination: str) -> None:
        """Move an object inside the bucket.

        Raises:
            DuplicateFileNameError: If ``destination`` is already taken.
            StorageError: For any other failure.
        """
        url = f"{self.base_api_url}/object/move"
        body = {"bucketId": self.bucket, "sourceKey": source, "destinationKey": destination}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url, headers=self.headers, json=body, timeout=settings.http_timeout
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error moving file: {str(e)}", exc_info=True)
            raise StorageError(f"Storage move error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.warning(
                f"Move failed: {response.text}",
                extra={"source": source, "destination": destination, "status_code": response.status_code}
            )
            if _is_duplicate(response):
                raise DuplicateFileNameError(f"File already exists: {destination}")
            raise StorageError(f"Move failed: {response.text}")

    async def remove_files(self, paths: Sequence[str]) -> None:
        """Delete objects. Paths that no longer exist are ignored."""
        if not paths:
            return
        url = f"{self.base_api_url}/object/{self.bucket}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    "DELETE",
                    url,
                    headers=self.headers,
                    json={"prefixes": list(paths)},
                    timeout=settings.http_timeout,
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Storage remove error: {str(e)}", original_error=e)

        if response.status_code not in (200, 404):
            raise StorageError(f"Remove failed: {response.text}")

    async def create_download_url(self, path: str, expires_in: Optional[int] = None) -> str:
        """Generate a signed download URL.

        Raises:
            StorageError: If URL generation fails.
        """
        url = f"{self.base_api_url}/object/sign/{self.bucket}/{path}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    headers=self.headers,
                    json={"expiresIn": expires_in or settings.supabase.signed_url_ttl},
                    timeout=settings.http_timeout
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Signed URL error: {str(e)}", original_error=e)

        if response.status_code != 200:
            raise StorageError(f"Signed URL generation failed: {response.text}")

        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise StorageError("Supabase response did not contain signedURL")
        # Supabase returns a path relative to /storage/v1
        if signed_path.startswith("/"):
            return f"{self.base_api_url}{signed_path}"
        return signed_path


def get_storage_service() -> StorageService:
    return StorageService()
