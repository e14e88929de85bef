"""Storage gateway over Supabase storage.

Objects are keyed ``{team_id}/{document_key}/{slug(base_name)}{ext}`` where
``document_key`` is a ``doc_<hex>`` id shared by every file that belongs to one
uploaded document.
"""

import asyncio
import os
import re
import unicodedata
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union

import httpx

from docpreview.config import settings
from docpreview.core.exceptions import NotFoundError, StorageError
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)

STORAGE_TYPE = "SUPABASE_PATH"

_DOCUMENT_KEY_PATTERN = re.compile(r"(doc_[^/]+)/")

# Base name used when nothing of the original name survives slugification
DEFAULT_BASE_NAME = "file"

# Supabase caps list pages and bulk deletes at 1000 entries
LIST_PAGE_SIZE = 1000
DELETE_BATCH_SIZE = 1000

ObjectContent = Union[bytes, AsyncIterator[bytes]]


@dataclass(frozen=True)
class StoredObject:
    """Where an uploaded object ended up."""
    storage_type: str
    reference: str


def new_document_key() -> str:
    return f"doc_{uuid.uuid4().hex}"


def slugify(text: str) -> str:
    """Lowercase, ASCII-only, hyphen separated slug.

    Accented letters are folded to their base letter (``Résumé`` -> ``resume``);
    characters with no ASCII decomposition are dropped.
    """
    normalized = unicodedata.normalize("NFKD", text)
    normalized = normalized.encode("ascii", "ignore").decode("ascii").lower()
    normalized = re.sub(r"[^a-z0-9]+", "-", normalized)
    return normalized.strip("-")


def build_object_key(team_id: str, file_name: str, document_key: Optional[str] = None) -> str:
    """Build the deterministic object key for a file.

    Args:
        team_id: Owning team
        file_name: Display file name; the base name is slugified, the extension kept
        document_key: ``doc_...`` folder, a new one is generated when omitted

    Returns:
        str: Object key, e.g. ``team_1/doc_ab12/quarterly-report.pdf``
    """
    base, ext = os.path.splitext(file_name)
    slug = slugify(base) or DEFAULT_BASE_NAME
    return f"{team_id}/{document_key or new_document_key()}/{slug}{ext}"


def extract_document_key(reference: str) -> Optional[str]:
    """Return the ``doc_...`` folder of an existing object key, if any."""
    match = _DOCUMENT_KEY_PATTERN.search(reference)
    return match.group(1) if match else None


class StorageService:
    """Signed reads, streamed writes, copies and prefix deletes against Supabase storage."""

    def __init__(
        self,
        url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.url = (url if url is not None else settings.storage.url).rstrip("/")
        self.service_role_key = service_role_key if service_role_key is not None else settings.storage.service_role_key
        self.bucket = bucket or settings.storage.bucket
        self.timeout = timeout or settings.http_timeout
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    async def get_read_url(
        self,
        storage_type: str,
        reference: str,
        expires_in: Optional[int] = None,
    ) -> str:
        """Generate a signed URL for reading an object.

        Args:
            storage_type: Storage backend tag recorded alongside the reference
            reference: Object key
            expires_in: Expiration time in seconds

        Returns:
            Absolute signed URL

        Raises:
            NotFoundError: If the object does not exist
            StorageError: If URL generation fails
        """
        if storage_type != STORAGE_TYPE:
            raise StorageError(f"Unsupported storage type: {storage_type}")

        url = f"{self.base_api_url}/object/sign/{self.bucket}/{reference}"
        expires_in = expires_in or settings.storage.signed_url_expires_in

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    headers=self.headers,
                    json={"expiresIn": expires_in},
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error generating signed URL: {str(e)}", exc_info=True)
            raise StorageError(f"Signed URL error: {str(e)}", original_error=e) from e

        if response.status_code in (400, 404) and "not found" in response.text.lower():
            raise NotFoundError(f"Object not found: {reference}")
        if response.status_code != 200:
            LOGGER.error(
                f"Failed to generate signed URL: {response.text}",
                extra={"bucket": self.bucket, "path": reference, "status_code": response.status_code},
            )
            raise StorageError(f"Signed URL generation failed: {response.text}")

        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise StorageError("Storage response did not contain signedURL")

        # Supabase returns a path relative to /storage/v1
        if signed_path.startswith("/object/"):
            return f"{self.base_api_url}{signed_path}"
        if signed_path.startswith("/"):
            return f"{self.url}{signed_path}"
        return signed_path

    async def put_object(
        self,
        team_id: str,
        file_name: str,
        content_type: str,
        content: ObjectContent,
        document_key: Optional[str] = None,
    ) -> StoredObject:
        """Upload bytes or a byte stream under the deterministic key.

        Existing objects at the same key are overwritten so re-rendering a
        page or re-running a conversion is safe.

        Raises:
            StorageError: If the upload fails
        """
        key = build_object_key(team_id, file_name, document_key)
        upload_url = f"{self.base_api_url}/object/{self.bucket}/{key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": content_type, "x-upsert": "true"},
                    content=content,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading object: {str(e)}", exc_info=True, extra={"path": key})
            raise StorageError(f"Storage upload error: {str(e)}", original_error=e) from e

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload object: {response.text}",
                extra={"bucket": self.bucket, "path": key, "status_code": response.status_code},
            )
            raise StorageError(f"Upload failed: {response.text}")

        LOGGER.debug("Uploaded object", extra={"bucket": self.bucket, "path": key})
        return StoredObject(storage_type=STORAGE_TYPE, reference=key)

    async def download_to_file(self, url: str, destination: Path) -> int:
        """Stream a URL to disk without buffering the whole body.

        Returns:
            Number of bytes written

        Raises:
            NotFoundError: On 404
            httpx.HTTPStatusError: On any other non-success status
        """
        written = 0
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            async with client.stream("GET", url) as response:
                if response.status_code == 404:
                    raise NotFoundError(f"Source file not found at {url}")
                response.raise_for_status()
                with open(destination, "wb") as handle:
                    async for chunk in response.aiter_bytes(settings.storage.download_chunk_size):
                        await asyncio.to_thread(handle.write, chunk)
                        written += len(chunk)

        LOGGER.debug("Downloaded file", extra={"destination": str(destination), "bytes": written})
        return written

    async def copy_object(self, team_id: str, reference: str) -> StoredObject:
        """Copy an object into a fresh ``doc_...`` folder of ``team_id``.

        The file name is kept; only the document folder changes.

        Raises:
            NotFoundError: If the source object does not exist
            StorageError: If the copy fails
        """
        destination = f"{team_id}/{new_document_key()}/{reference.rsplit('/', 1)[-1]}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_api_url}/object/copy",
                    headers=self.headers,
                    json={"bucketId": self.bucket, "sourceKey": reference, "destinationKey": destination},
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error copying object: {str(e)}", exc_info=True, extra={"path": reference})
            raise StorageError(f"Storage copy error: {str(e)}", original_error=e) from e

        if response.status_code in (400, 404) and "not found" in response.text.lower():
            raise NotFoundError(f"Object not found: {reference}")
        if response.status_code != 200:
            LOGGER.error(
                f"Failed to copy object: {response.text}",
                extra={"bucket": self.bucket, "path": reference, "status_code": response.status_code},
            )
            raise StorageError(f"Copy failed: {response.text}")

        LOGGER.info("Copied object", extra={"bucket": self.bucket, "from": reference, "to": destination})
        return StoredObject(storage_type=STORAGE_TYPE, reference=destination)

    async def list_objects(self, prefix: str) -> List[str]:
        """Return every object key below a folder prefix, descending into subfolders.

        Raises:
            StorageError: If listing fails
        """
        folder = prefix.strip("/")
        keys: List[str] = []

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                pending = [folder]
                while pending:
                    current = pending.pop()
                    offset = 0
                    while True:
                        entries = await self._list_page(client, current, offset)
                        for entry in entries:
                            path = f"{current}/{entry['name']}" if current else entry["name"]
                            # Folders come back without an id
                            if entry.get("id") is None:
                                pending.append(path)
                            else:
                                keys.append(path)
                        if len(entries) < LIST_PAGE_SIZE:
                            break
                        offset += LIST_PAGE_SIZE
        except httpx.HTTPError as e:
            LOGGER.error(f"Error listing objects: {str(e)}", exc_info=True, extra={"prefix": folder})
            raise StorageError(f"Storage list error: {str(e)}", original_error=e) from e

        return keys

    async def _list_page(self, client: httpx.AsyncClient, folder: str, offset: int) -> List[dict]:
        response = await client.post(
            f"{self.base_api_url}/object/list/{self.bucket}",
            headers=self.headers,
            json={"prefix": folder, "limit": LIST_PAGE_SIZE, "offset": offset},
        )
        if response.status_code != 200:
            LOGGER.error(
                f"Failed to list objects: {response.text}",
                extra={"bucket": self.bucket, "prefix": folder, "status_code": response.status_code},
            )
            raise StorageError(f"List failed: {response.text}")
        return response.json()

    async def delete_objects(self, prefix: str) -> int:
        """Delete every object below a folder prefix, e.g. ``team_1/doc_ab12``.

        Returns:
            Number of objects deleted; 0 when nothing matched

        Raises:
            StorageError: If listing or deleting fails
        """
        if not prefix.strip("/"):
            raise StorageError("Refusing to delete with an empty prefix")

        keys = await self.list_objects(prefix)
        if not keys:
            LOGGER.info("No objects to delete", extra={"bucket": self.bucket, "prefix": prefix})
            return 0

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                for start in range(0, len(keys), DELETE_BATCH_SIZE):
                    batch = keys[start:start + DELETE_BATCH_SIZE]
                    response = await client.request(
                        "DELETE",
                        f"{self.base_api_url}/object/{self.bucket}",
                        headers=self.headers,
                        json={"prefixes": batch},
                    )
                    if response.status_code != 200:
                        LOGGER.error(
                            f"Failed to delete objects: {response.text}",
                            extra={"bucket": self.bucket, "prefix": prefix, "status_code": response.status_code},
                        )
                        raise StorageError(f"Delete failed: {response.text}")
        except httpx.HTTPError as e:
            LOGGER.error(f"Error deleting objects: {str(e)}", exc_info=True, extra={"prefix": prefix})
            raise StorageError(f"Storage delete error: {str(e)}", original_error=e) from e

        LOGGER.info(f"Deleted {len(keys)} objects", extra={"bucket": self.bucket, "prefix": prefix})
        return len(keys)

    async def delete_team_objects(self, team_id: str) -> int:
        """Delete everything stored for a team."""
        return await self.delete_objects(f"{team_id}/")


async def iter_file(path: Path, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
    """Yield a local file in chunks for streamed uploads."""
    chunk_size = chunk_size or settings.storage.download_chunk_size
    with open(path, "rb") as handle:
        while True:
            chunk = await asyncio.to_thread(handle.read, chunk_size)
            if not chunk:
                break
            yield chunk
