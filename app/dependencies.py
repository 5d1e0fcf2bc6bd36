"""Process-wide collaborators, built lazily from settings and injectable via FastAPI."""
from __future__ import annotations

import logging
from functools import lru_cache

from app.config import get_settings
from app.services.analytics import AnalyticsSink, FirestoreAnalyticsSink, InMemoryAnalyticsSink
from app.services.firebase import get_firestore_client
from app.services.gcs_storage import GCSObjectStorage, build_gcs_storage
from app.services.job_store import FirestoreJobStore, InMemoryJobStore, JobStore
from app.services.orchestrator import GenerationOrchestrator
from app.services.rehost import ArtifactStore, FirebaseArtifactStore, R2ArtifactStore
from app.services.veo_client import VeoClient

log = logging.getLogger("veo-service")


@lru_cache()
def get_job_store() -> JobStore:
    settings = get_settings()
    if settings.firebase.use_memory_store:
        log.warning("JOB_STORE=memory: job records live in this process only")
        return InMemoryJobStore()
    return FirestoreJobStore(get_firestore_client(settings.firebase), settings.firebase.jobs_collection)


@lru_cache()
def get_analytics_sink() -> AnalyticsSink:
    settings = get_settings()
    if settings.firebase.use_memory_store:
        return InMemoryAnalyticsSink()
    return FirestoreAnalyticsSink(get_firestore_client(settings.firebase), settings.firebase.analytics_collection)


@lru_cache()
def get_object_storage() -> GCSObjectStorage:
    settings = get_settings()
    return build_gcs_storage(settings.firebase.project_id, settings.storage.default_bucket)


@lru_cache()
def get_veo_client() -> VeoClient:
    return VeoClient(get_settings().veo)


@lru_cache()
def get_artifact_store() -> ArtifactStore:
    settings = get_settings()
    if settings.storage.rehost_target == "r2":
        if not settings.r2.is_configured:
            log.warning("REHOST_TARGET=r2 but R2 is not fully configured; uploads will fall back to provider URLs")
        return R2ArtifactStore(settings.r2, prefix=settings.storage.rehost_prefix)
    return FirebaseArtifactStore(
        get_object_storage(),
        settings.storage.default_bucket,
        prefix=settings.storage.rehost_prefix,
    )


@lru_cache()
def get_orchestrator() -> GenerationOrchestrator:
    settings = get_settings()
    return GenerationOrchestrator(
        store=get_job_store(),
        storage=get_object_storage(),
        veo=get_veo_client(),
        artifacts=get_artifact_store(),
        analytics=get_analytics_sink(),
        config=settings.veo,
        signed_url_ttl=settings.storage.signed_url_ttl_seconds,
    )


__all__ = [
    "get_analytics_sink",
    "get_artifact_store",
    "get_job_store",
    "get_object_storage",
    "get_orchestrator",
    "get_veo_client",
]
