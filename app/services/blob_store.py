import logging
from typing import Optional

import httpx
from app.config import settings
from app.errors import BlobUploadFailed

logger = logging.getLogger(__name__)


class HttpBlobStore:
    """Public-read object storage reached over HTTP (Vercel Blob style PUT API)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url or settings.blob_store_url).rstrip("/")
        self.token = token if token is not None else settings.blob_read_write_token
        self.client = client or httpx.Client(timeout=timeout)

    def upload(self, data: bytes, mime_type: str, key: str) -> str:
        if not self.token:
            raise BlobUploadFailed("BLOB_READ_WRITE_TOKEN is not set; cannot upload inline assets.")
        headers = {
            "Authorization": f"Bearer {self.token}",
            "x-content-type": mime_type,
            "x-add-random-suffix": "0",
        }
        try:
            r = self.client.put(f"{self.base_url}/{key}", headers=headers, content=data)
        except httpx.RequestError as e:
            raise BlobUploadFailed(f"Blob upload failed: {e}") from e
        if r.status_code >= 400:
            raise BlobUploadFailed(f"Blob upload error {r.status_code}: {r.text[:300]}")
        try:
            body = r.json()
        except ValueError:
            body = {}
        url = (body.get("url") or body.get("downloadUrl")) if isinstance(body, dict) else None
        if not url:
            raise BlobUploadFailed(f"Blob store returned no url: {r.text[:300]}")
        logger.info("Uploaded %d bytes to %s", len(data), url)
        return url
