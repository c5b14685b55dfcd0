import base64
import binascii
import re
import time
import uuid
from typing import Optional, Protocol

from app.errors import UnsupportedAssetFormat
from app.services.blob_store import HttpBlobStore

DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)


class BlobStore(Protocol):
    def upload(self, data: bytes, mime_type: str, key: str) -> str: ...


class AssetResolver:
    """Turns any asset reference into a URL the platform can fetch."""

    def __init__(self, store: Optional[BlobStore] = None, key_prefix: str = "instagram"):
        self._store = store
        self.key_prefix = key_prefix

    @property
    def store(self) -> BlobStore:
        if self._store is None:
            self._store = HttpBlobStore()
        return self._store

    def resolve(self, ref: str) -> str:
        if not isinstance(ref, str) or not ref:
            raise UnsupportedAssetFormat("Empty asset reference")
        if ref.startswith("http://") or ref.startswith("https://"):
            return ref
        if ref.startswith("data:"):
            mime_type, data = self._decode_data_url(ref)
            ext = mime_type.split("/")[-1] or "png"
            # every resolve stores its own copy, even within one millisecond
            key = f"{self.key_prefix}/{time.time_ns() // 1_000_000}-{uuid.uuid4().hex}.{ext}"
            return self.store.upload(data, mime_type, key)
        raise UnsupportedAssetFormat(f"Unsupported asset format: {ref[:40]}")

    @staticmethod
    def _decode_data_url(ref: str) -> tuple[str, bytes]:
        m = DATA_URL_RE.match(ref)
        if not m:
            raise UnsupportedAssetFormat("Invalid data URL format")
        mime_type, payload = m.group(1).strip(), "".join(m.group(2).split())
        try:
            return mime_type, base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise UnsupportedAssetFormat(f"Invalid base64 payload: {e}") from e
