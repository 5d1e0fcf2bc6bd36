"""Copy a provider-hosted video into storage we own."""
from __future__ import annotations

import logging
import uuid
from typing import Optional, Protocol

from starlette.concurrency import run_in_threadpool

from app.config import R2Config
from app.errors import RehostError
from app.services import r2_client
from app.services.gcs_storage import TOKEN_METADATA_KEY, ObjectStorage
from app.services.storage_refs import ObjectRef, firebase_token_url
from app.services.veo_client import VeoClient

logger = logging.getLogger("veo-service")

VIDEO_CONTENT_TYPE = "video/mp4"
OUTPUT_FILENAME = "output.mp4"


class ArtifactStore(Protocol):
    async def store(self, job_id: str, data: bytes, content_type: str) -> str: ...


class FirebaseArtifactStore:
    """Uploads to ``{prefix}/{job_id}/output.mp4`` with a fresh Firebase download token."""

    def __init__(self, storage: ObjectStorage, bucket: Optional[str], prefix: str = "generated_ads") -> None:
        self._storage = storage
        self._bucket = bucket
        self._prefix = prefix.strip("/")

    async def store(self, job_id: str, data: bytes, content_type: str) -> str:
        if not self._bucket:
            raise RehostError("no default storage bucket configured")
        ref = ObjectRef(bucket=self._bucket, path=f"{self._prefix}/{job_id}/{OUTPUT_FILENAME}")
        token = str(uuid.uuid4())
        await self._storage.upload(ref, data, content_type, metadata={TOKEN_METADATA_KEY: token})
        return firebase_token_url(ref.bucket, ref.path, token)


class R2ArtifactStore:
    def __init__(self, config: R2Config, prefix: str = "generated_ads") -> None:
        self._config = config
        self._prefix = prefix

    async def store(self, job_id: str, data: bytes, content_type: str) -> str:
        key = r2_client.make_key(self._prefix, job_id, OUTPUT_FILENAME)
        url = await run_in_threadpool(r2_client.put_bytes, self._config, key, data, content_type=content_type)
        if not url:
            raise RehostError(f"R2 upload returned no public URL for {key}")
        return url


async def rehost_artifact(veo: VeoClient, artifacts: ArtifactStore, job_id: str, provider_url: str) -> str:
    """Download ``provider_url`` and store it; any failure surfaces as ``RehostError``."""

    try:
        data, _ = await veo.download(provider_url)
    except Exception as exc:  # noqa: BLE001
        raise RehostError(f"artifact download failed: {exc}", cause=exc) from exc
    if not data:
        raise RehostError("artifact download returned no bytes")

    try:
        url = await artifacts.store(job_id, data, VIDEO_CONTENT_TYPE)
    except RehostError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise RehostError(f"artifact upload failed: {exc}", cause=exc) from exc

    logger.info("[rehost] job=%s bytes=%d url=%s", job_id, len(data), url)
    return url


__all__ = [
    "ArtifactStore",
    "FirebaseArtifactStore",
    "R2ArtifactStore",
    "VIDEO_CONTENT_TYPE",
    "rehost_artifact",
]
