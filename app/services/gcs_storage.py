"""Google Cloud Storage access for product images and rehosted videos."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional, Protocol

from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from app.services.storage_refs import ObjectRef

logger = logging.getLogger("veo-service")

TOKEN_METADATA_KEY = "firebaseStorageDownloadTokens"


@dataclass(frozen=True)
class StoredObject:
    data: bytes
    content_type: Optional[str]


class ObjectStorage(Protocol):
    default_bucket: Optional[str]

    async def exists(self, ref: ObjectRef) -> bool: ...

    async def download(self, ref: ObjectRef) -> StoredObject: ...

    async def signed_url(self, ref: ObjectRef, ttl_seconds: int) -> str: ...

    async def download_token(self, ref: ObjectRef) -> str: ...

    async def upload(
        self,
        ref: ObjectRef,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None: ...


class GCSObjectStorage:
    """Thin async wrapper over ``google.cloud.storage`` scoped to bucket/path pairs."""

    def __init__(self, client: storage.Client, default_bucket: Optional[str] = None) -> None:
        self._client = client
        self.default_bucket = default_bucket

    def _blob(self, ref: ObjectRef) -> storage.Blob:
        return self._client.bucket(ref.bucket).blob(ref.path)

    async def exists(self, ref: ObjectRef) -> bool:
        blob = self._blob(ref)
        return bool(await run_in_threadpool(blob.exists))

    async def download(self, ref: ObjectRef) -> StoredObject:
        # get_blob loads metadata, so content_type is populated alongside the bytes.
        def _fetch() -> StoredObject:
            blob = self._client.bucket(ref.bucket).get_blob(ref.path)
            if blob is None:
                raise FileNotFoundError(ref.uri)
            return StoredObject(data=blob.download_as_bytes(), content_type=blob.content_type)

        return await run_in_threadpool(_fetch)

    async def signed_url(self, ref: ObjectRef, ttl_seconds: int) -> str:
        blob = self._blob(ref)
        expiration = timedelta(seconds=int(ttl_seconds))
        return await run_in_threadpool(blob.generate_signed_url, expiration=expiration, method="GET")

    async def download_token(self, ref: ObjectRef) -> str:
        """Return the object's Firebase download token, minting one when absent."""

        def _read_or_mint() -> str:
            blob = self._client.bucket(ref.bucket).get_blob(ref.path)
            if blob is None:
                raise FileNotFoundError(ref.uri)
            metadata = dict(blob.metadata or {})
            existing = str(metadata.get(TOKEN_METADATA_KEY) or "").split(",")[0].strip()
            if existing:
                return existing
            token = str(uuid.uuid4())
            metadata[TOKEN_METADATA_KEY] = token
            blob.metadata = metadata
            blob.patch()
            logger.info("[storage.token] minted download token for %s", ref.uri)
            return token

        return await run_in_threadpool(_read_or_mint)

    async def upload(
        self,
        ref: ObjectRef,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        blob = self._blob(ref)
        if metadata:
            blob.metadata = dict(metadata)
        await run_in_threadpool(blob.upload_from_string, data, content_type)


def build_gcs_storage(project_id: Optional[str], default_bucket: Optional[str]) -> GCSObjectStorage:
    return GCSObjectStorage(storage.Client(project=project_id), default_bucket=default_bucket)


__all__ = [
    "GCSObjectStorage",
    "ObjectStorage",
    "StoredObject",
    "TOKEN_METADATA_KEY",
    "build_gcs_storage",
]
