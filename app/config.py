from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List
from urllib.parse import urlparse


DEFAULT_VEO_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_VEO_MODEL = "veo-3.0-generate-001"
DEFAULT_NEGATIVE_PROMPT = "text, captions, subtitles, watermarks"


def _as_bool(value: str | None, default: bool) -> bool:
    """Interpret common truthy / falsy strings while providing a default."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    if value is None or not value.strip():
        return default
    try:
        return max(int(value.strip()), minimum)
    except (TypeError, ValueError):
        return default


def _as_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return max(float(value.strip()), 0.0)
    except (TypeError, ValueError):
        return default


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@dataclass
class VeoConfig:
    api_key: str | None = None
    api_base: str = DEFAULT_VEO_API_BASE
    model: str = DEFAULT_VEO_MODEL
    negative_prompt: str = DEFAULT_NEGATIVE_PROMPT
    poll_interval_seconds: float = 10.0
    max_poll_attempts: int = 48
    heartbeat_every: int = 3
    submit_timeout_seconds: float = 120.0
    poll_timeout_seconds: float = 60.0
    download_timeout_seconds: float = 300.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "VeoConfig":
        return cls(
            api_key=(os.getenv("VEO_API_KEY") or os.getenv("GEMINI_API_KEY") or "").strip() or None,
            api_base=(os.getenv("VEO_API_BASE") or DEFAULT_VEO_API_BASE).rstrip("/"),
            model=os.getenv("VEO_MODEL") or DEFAULT_VEO_MODEL,
            negative_prompt=os.getenv("VEO_NEGATIVE_PROMPT") or DEFAULT_NEGATIVE_PROMPT,
            poll_interval_seconds=_as_float(os.getenv("VEO_POLL_INTERVAL_SECONDS"), 10.0),
            max_poll_attempts=_as_int(os.getenv("VEO_MAX_POLL_ATTEMPTS"), 48, minimum=1),
            heartbeat_every=_as_int(os.getenv("VEO_HEARTBEAT_EVERY"), 3, minimum=1),
            submit_timeout_seconds=_as_float(os.getenv("VEO_SUBMIT_TIMEOUT_SECONDS"), 120.0),
            poll_timeout_seconds=_as_float(os.getenv("VEO_POLL_TIMEOUT_SECONDS"), 60.0),
            download_timeout_seconds=_as_float(os.getenv("VEO_DOWNLOAD_TIMEOUT_SECONDS"), 300.0),
        )


@dataclass
class FirebaseConfig:
    project_id: str | None = None
    service_account_json_path: str | None = None
    jobs_collection: str = "adJobs"
    analytics_collection: str = "analyticsEvents"
    job_store: str = "firestore"

    @property
    def use_memory_store(self) -> bool:
        return self.job_store == "memory"


@dataclass
class StorageConfig:
    default_bucket: str | None = None
    signed_url_ttl_seconds: int = 3600
    rehost_target: str = "firebase"
    rehost_prefix: str = "generated_ads"


@dataclass
class R2Config:
    endpoint: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    region: str = "auto"
    bucket: str | None = None
    public_base: str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.access_key and self.secret_key and self.bucket)


@dataclass
class Settings:
    environment: str
    allowed_origins: List[str]
    task_secret: str | None
    veo: VeoConfig
    firebase: FirebaseConfig
    storage: StorageConfig
    r2: R2Config


@lru_cache()
def get_settings() -> Settings:
    def _get(name: str, default: str | None = None) -> str | None:
        v = os.getenv(name)
        return v if v is not None else default

    def _first(*names: str) -> str | None:
        for name in names:
            value = (os.getenv(name) or "").strip()
            if value:
                return value
        return None

    environment = _get("ENVIRONMENT", "development") or "development"
    allowed_origins = _parse_allowed_origins(_get("ALLOWED_ORIGINS", "*"))

    firebase = FirebaseConfig(
        project_id=_first("FIREBASE_PROJECT_ID", "GCP_PROJECT_ID", "GOOGLE_CLOUD_PROJECT"),
        service_account_json_path=_first("FIREBASE_SERVICE_ACCOUNT_JSON_PATH"),
        jobs_collection=_get("JOBS_COLLECTION", "adJobs") or "adJobs",
        analytics_collection=_get("ANALYTICS_COLLECTION", "analyticsEvents") or "analyticsEvents",
        job_store=(_get("JOB_STORE", "firestore") or "firestore").strip().lower(),
    )

    storage = StorageConfig(
        default_bucket=_first("FIREBASE_STORAGE_BUCKET", "GCS_BUCKET"),
        signed_url_ttl_seconds=_as_int(_get("SIGNED_URL_TTL_SECONDS"), 3600, minimum=60),
        rehost_target=(_get("REHOST_TARGET", "firebase") or "firebase").strip().lower(),
        rehost_prefix=(_get("REHOST_PREFIX", "generated_ads") or "generated_ads").strip("/ "),
    )

    r2 = R2Config(
        endpoint=_first("R2_ENDPOINT", "S3_ENDPOINT"),
        access_key=_first("R2_ACCESS_KEY_ID", "S3_ACCESS_KEY"),
        secret_key=_first("R2_SECRET_ACCESS_KEY", "S3_SECRET_KEY"),
        region=_first("R2_REGION", "S3_REGION") or "auto",
        bucket=_first("R2_BUCKET", "S3_BUCKET"),
        public_base=_first("R2_PUBLIC_BASE", "S3_PUBLIC_BASE"),
    )

    return Settings(
        environment=environment,
        allowed_origins=allowed_origins,
        task_secret=_first("TASK_SECRET"),
        veo=VeoConfig.from_env(),
        firebase=firebase,
        storage=storage,
        r2=r2,
    )
