"""Canonical ``gs://`` references and the legacy shapes they are recovered from."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote, unquote

LEGACY_SUFFIX = ".appspot.com"
MODERN_SUFFIX = ".firebasestorage.app"

_GS_RX = re.compile(r"^gs://([^/]+)/(.+)$")
_TOKEN_URL_RX = re.compile(r"^https?://firebasestorage\.googleapis\.com/v0/b/([^/]+)/o/([^?#]+)", re.IGNORECASE)
_DIRECT_URL_RX = re.compile(r"^https?://storage\.googleapis\.com/([^/]+)/([^?#]+)", re.IGNORECASE)
_ALT_DOMAIN_RX = re.compile(r"^https?://([^/.]+)\.firebasestorage\.app/(?:v0/)?o/([^?#]+)", re.IGNORECASE)


@dataclass(frozen=True)
class ObjectRef:
    bucket: str
    path: str

    @property
    def uri(self) -> str:
        return f"gs://{self.bucket}/{self.path}"

    def with_bucket(self, bucket: str) -> "ObjectRef":
        return ObjectRef(bucket=bucket, path=self.path)


def sanitize_gs(uri: str) -> str:
    """Rewrite the modern bucket host suffix back to the legacy one inside a gs:// URI."""

    return uri.replace(f"{MODERN_SUFFIX}/", f"{LEGACY_SUFFIX}/")


def parse_gs_uri(value: Optional[str]) -> Optional[ObjectRef]:
    text = (value or "").strip()
    if not text:
        return None
    match = _GS_RX.match(text)
    if not match:
        return None
    bucket, path = match.group(1), match.group(2).lstrip("/")
    if not bucket or not path:
        return None
    return ObjectRef(bucket=bucket, path=path)


def normalize_https_to_gs(url: Optional[str]) -> Optional[ObjectRef]:
    """Recover a bucket/object pair from one of the known HTTPS download URL shapes.

    Recognised shapes:

    * ``https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{object}?alt=media&token=...``
    * ``https://storage.googleapis.com/{bucket}/{object}``
    * ``https://{project}.firebasestorage.app/o/{object}`` (bucket becomes ``{project}.appspot.com``)
    """

    text = (url or "").strip()
    if not text:
        return None

    match = _TOKEN_URL_RX.match(text)
    if match:
        return _ref(match.group(1), unquote(match.group(2)))

    match = _DIRECT_URL_RX.match(text)
    if match:
        return _ref(match.group(1), unquote(match.group(2)))

    match = _ALT_DOMAIN_RX.match(text)
    if match:
        return _ref(f"{match.group(1)}{LEGACY_SUFFIX}", unquote(match.group(2)))

    return None


def _ref(bucket: str, path: str) -> Optional[ObjectRef]:
    path = path.lstrip("/")
    if not bucket or not path:
        return None
    return ObjectRef(bucket=bucket, path=path)


def bucket_candidates(bucket: str, default_bucket: Optional[str] = None) -> List[str]:
    """Buckets to try, in order: as declared, the other naming convention, then the default."""

    out: List[str] = []

    def _add(name: Optional[str]) -> None:
        if name and name not in out:
            out.append(name)

    _add(bucket)
    if bucket.endswith(LEGACY_SUFFIX):
        _add(bucket[: -len(LEGACY_SUFFIX)] + MODERN_SUFFIX)
    elif bucket.endswith(MODERN_SUFFIX):
        _add(bucket[: -len(MODERN_SUFFIX)] + LEGACY_SUFFIX)
    _add(default_bucket)
    return out


def firebase_token_url(bucket: str, path: str, token: str) -> str:
    encoded = quote(path, safe="")
    return f"https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{encoded}?alt=media&token={token}"


__all__ = [
    "LEGACY_SUFFIX",
    "MODERN_SUFFIX",
    "ObjectRef",
    "bucket_candidates",
    "firebase_token_url",
    "normalize_https_to_gs",
    "parse_gs_uri",
    "sanitize_gs",
]
