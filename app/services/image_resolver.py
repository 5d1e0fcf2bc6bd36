"""Turn a job's product image reference into inline bytes or a fetchable URL."""
from __future__ import annotations

import io
import logging
import mimetypes
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from PIL import Image as PILImage

from app.errors import ImageRequired, ImageResolutionFailed
from app.schemas import JobRecord
from app.services.analytics import best_effort
from app.services.gcs_storage import ObjectStorage
from app.services.job_store import JobStore
from app.services.storage_refs import (
    ObjectRef,
    bucket_candidates,
    firebase_token_url,
    normalize_https_to_gs,
    parse_gs_uri,
    sanitize_gs,
)

logger = logging.getLogger("veo-service")

DEFAULT_IMAGE_MIME = "image/jpeg"

SOURCE_DECLARED = "imageGsPath"
SOURCE_INPUT_PATH = "inputImagePath"
SOURCE_INPUT_URL = "inputImageUrl"


@dataclass(frozen=True)
class ResolvedImage:
    ref: ObjectRef
    method: str
    data: Optional[bytes] = None
    mime_type: Optional[str] = None
    url: Optional[str] = None

    @property
    def is_inline(self) -> bool:
        return self.data is not None


def _ref_from_value(value: Optional[str], default_bucket: Optional[str], *, allow_bare: bool) -> Optional[ObjectRef]:
    text = (value or "").strip()
    if not text:
        return None
    if text.startswith("gs://"):
        return parse_gs_uri(sanitize_gs(text))
    if text.startswith(("http://", "https://")):
        return normalize_https_to_gs(text)
    if allow_bare and default_bucket:
        path = text.lstrip("/")
        return ObjectRef(bucket=default_bucket, path=path) if path else None
    return None


def canonical_reference(job: JobRecord, default_bucket: Optional[str] = None) -> Tuple[Optional[ObjectRef], Optional[str]]:
    """Return ``(ref, source)`` from the declared field, then the legacy fields, in that order."""

    declared = job.prompt_v1.product.image_gs_path if job.prompt_v1 else None
    candidates = (
        (SOURCE_DECLARED, declared, False),
        (SOURCE_INPUT_PATH, job.input_image_path, True),
        (SOURCE_INPUT_URL, job.input_image_url, False),
    )
    for source, value, allow_bare in candidates:
        ref = _ref_from_value(value, default_bucket, allow_bare=allow_bare)
        if ref is not None:
            return ref, source
    return None, None


def detect_mime(data: bytes, content_type: Optional[str], path: str) -> str:
    if content_type and content_type.lower().startswith("image/"):
        return content_type.lower()
    try:
        with PILImage.open(io.BytesIO(data)) as img:
            sniffed = PILImage.MIME.get(img.format or "")
    except Exception:  # noqa: BLE001 - not a decodable image, fall through to the extension
        sniffed = None
    if sniffed:
        return sniffed
    guessed, _ = mimetypes.guess_type(path)
    if guessed and guessed.startswith("image/"):
        return guessed
    return DEFAULT_IMAGE_MIME


async def _exists(storage: ObjectStorage, ref: ObjectRef) -> Optional[bool]:
    """``None`` means the check itself failed and the bucket is still worth trying."""

    try:
        return await storage.exists(ref)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[image.resolve] exists check failed for %s: %s", ref.uri, exc)
        return None


async def _inline(storage: ObjectStorage, ref: ObjectRef, ttl_seconds: int) -> Optional[ResolvedImage]:
    try:
        stored = await storage.download(ref)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[image.resolve] download failed for %s: %s", ref.uri, exc)
        return None
    if not stored.data:
        return None
    mime = detect_mime(stored.data, stored.content_type, ref.path)
    return ResolvedImage(ref=ref, method="inline", data=stored.data, mime_type=mime)


async def _signed_url(storage: ObjectStorage, ref: ObjectRef, ttl_seconds: int) -> Optional[ResolvedImage]:
    try:
        url = await storage.signed_url(ref, ttl_seconds)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[image.resolve] signed url failed for %s: %s", ref.uri, exc)
        return None
    return ResolvedImage(ref=ref, method="signed_url", url=url) if url else None


async def _token_url(storage: ObjectStorage, ref: ObjectRef, ttl_seconds: int) -> Optional[ResolvedImage]:
    try:
        token = await storage.download_token(ref)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[image.resolve] token url failed for %s: %s", ref.uri, exc)
        return None
    if not token:
        return None
    return ResolvedImage(ref=ref, method="token_url", url=firebase_token_url(ref.bucket, ref.path, token))


_STRATEGIES: Tuple[Callable[[ObjectStorage, ObjectRef, int], Awaitable[Optional[ResolvedImage]]], ...] = (
    _inline,
    _signed_url,
    _token_url,
)


async def resolve_image(
    job: JobRecord,
    storage: ObjectStorage,
    *,
    store: Optional[JobStore] = None,
    signed_url_ttl: int = 3600,
) -> ResolvedImage:
    ref, source = canonical_reference(job, storage.default_bucket)
    if ref is None:
        raise ImageRequired("product image is required")

    if source != SOURCE_DECLARED and store is not None and job.job_id:
        logger.info("[image.resolve] job=%s recovered %s from %s", job.job_id, ref.uri, source)
        await best_effort(
            "persist_image_ref",
            store.update(job.job_id, {"promptV1.product.imageGsPath": ref.uri}),
        )

    for bucket in bucket_candidates(ref.bucket, storage.default_bucket):
        candidate = ref.with_bucket(bucket)
        if await _exists(storage, candidate) is False:
            logger.info("[image.resolve] %s not found, trying next bucket", candidate.uri)
            continue
        for strategy in _STRATEGIES:
            resolved = await strategy(storage, candidate, signed_url_ttl)
            if resolved is not None:
                logger.info(
                    "[image.resolve] job=%s resolved %s via %s",
                    job.job_id,
                    candidate.uri,
                    resolved.method,
                )
                return resolved

    raise ImageResolutionFailed(f"could not resolve {ref.uri}")


__all__ = [
    "DEFAULT_IMAGE_MIME",
    "ResolvedImage",
    "canonical_reference",
    "detect_mime",
    "resolve_image",
]
