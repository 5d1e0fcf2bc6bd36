"""Cloudflare R2 helper utilities used as an alternative rehost target."""
from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Optional

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from app.config import R2Config

logger = logging.getLogger("veo-service")


@lru_cache(maxsize=1)
def _session() -> boto3.session.Session:
    return boto3.session.Session()


@lru_cache(maxsize=4)
def _client(endpoint: str, access: str, secret: str, region: str) -> BaseClient:
    return _session().client(
        "s3",
        endpoint_url=endpoint,
        aws_access_key_id=access,
        aws_secret_access_key=secret,
        region_name=region,
    )


def get_client(config: R2Config) -> BaseClient:
    """Return the cached boto3 client for Cloudflare R2."""

    if not (config.endpoint and config.access_key and config.secret_key):
        raise RuntimeError("R2 storage is not configured")
    return _client(config.endpoint, config.access_key, config.secret_key, config.region or "auto")


def make_key(prefix: str, job_id: str, filename: str = "output.mp4") -> str:
    prefix = (prefix or "generated_ads").strip("/ ") or "generated_ads"
    safe_job = re.sub(r"[^0-9A-Za-z._-]", "_", job_id or "job")
    safe_name = re.sub(r"[^0-9A-Za-z._-]", "_", filename or "output.mp4")
    return f"{prefix}/{safe_job}/{safe_name}"


def public_url_for(config: R2Config, key: str) -> str | None:
    if not config.public_base:
        return None
    return f"{config.public_base.rstrip('/')}/{key.lstrip('/')}"


def put_bytes(
    config: R2Config,
    key: str,
    data: bytes,
    *,
    content_type: str = "application/octet-stream",
) -> Optional[str]:
    if not config.bucket:
        return None
    client = get_client(config)
    try:
        client.put_object(
            Bucket=config.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
    except (ClientError, BotoCoreError) as exc:
        logger.warning("R2 put failed: bucket=%s key=%s err=%s", config.bucket, key, exc)
        return None

    return public_url_for(config, key)


__all__ = [
    "get_client",
    "make_key",
    "public_url_for",
    "put_bytes",
]
