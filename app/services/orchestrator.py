"""Drives one admitted job through submit, poll, extract, rehost and terminal write.

Status only moves forward along pending/queued -> generating -> processing -> ready,
with error reachable from every non-terminal state. Only the single execution
admitted by the job gate writes to the job after admission, so these writes are
plain merges rather than transactions.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from app.config import VeoConfig
from app.errors import (
    InvalidArgument,
    JobError,
    MissingCredential,
    NoArtifact,
    PollTimeout,
    PromptSpecMissing,
    ProviderPollError,
    RehostError,
    Unauthenticated,
    truncate_message,
)
from app.schemas import JobRecord, JobStatus, can_transition
from app.services.analytics import AnalyticsSink, best_effort
from app.services.artifact_extractors import extract_video_uri
from app.services.gcs_storage import ObjectStorage
from app.services.image_resolver import resolve_image
from app.services.job_gate import ALREADY_READY, admit
from app.services.job_store import JobStore
from app.services.prompt_builder import build_prompt, compose_generation_prompt
from app.services.rehost import ArtifactStore, rehost_artifact
from app.services.veo_client import VeoClient, select_output_format

logger = logging.getLogger("veo-service")

PROMPT_HEAD_CHARS = 220
EVENT_READY = "ad_job_ready"
EVENT_FAILED = "ad_job_failed"


class GenerationOrchestrator:
    def __init__(
        self,
        *,
        store: JobStore,
        storage: ObjectStorage,
        veo: VeoClient,
        artifacts: ArtifactStore,
        analytics: AnalyticsSink,
        config: VeoConfig,
        signed_url_ttl: int = 3600,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._storage = storage
        self._veo = veo
        self._artifacts = artifacts
        self._analytics = analytics
        self._config = config
        self._signed_url_ttl = signed_url_ttl
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def start_job(self, job_id: str, caller_id: Optional[str], *, started_by: Optional[str] = None) -> Dict[str, Any]:
        if not caller_id:
            raise Unauthenticated("User must be signed in.")
        job_id = (job_id or "").strip()
        if not job_id:
            raise InvalidArgument("Missing jobId")

        admission = await admit(
            self._store,
            job_id,
            caller_id,
            preflight=self._preflight,
            started_by=started_by,
        )
        if not admission.admitted:
            if admission.reason == ALREADY_READY:
                return {"status": JobStatus.READY.value, "finalVideoUrl": admission.job.final_video_url}
            return {"status": JobStatus.PENDING.value}
        return await self.run_admitted(admission.job)

    def _preflight(self, job: JobRecord) -> None:
        if job.prompt_v1 is None:
            raise PromptSpecMissing("missing promptV1")
        if not self._veo.has_credential:
            raise MissingCredential("VEO_API_KEY is not configured")

    # ------------------------------------------------------------------
    # Admitted execution
    # ------------------------------------------------------------------

    async def run_admitted(self, job: JobRecord) -> Dict[str, Any]:
        job_id = job.job_id or ""
        # Admitted jobs are never terminal; a stale generating/processing status restarts the chain.
        status = JobStatus.PENDING
        try:
            image = await resolve_image(
                job,
                self._storage,
                store=self._store,
                signed_url_ttl=self._signed_url_ttl,
            )

            spec = job.prompt_v1
            built = build_prompt(spec.product.description, spec.product.hint) if spec else build_prompt("")
            prompt = compose_generation_prompt(job, built)
            output = select_output_format(job)
            model = job.model or self._config.model

            status = await self._transition(
                job_id,
                status,
                JobStatus.GENERATING,
                {"templateId": built.template_id, "veoPrompt": prompt, "provider": "veo3", "model": model},
            )
            await self._debug(
                job_id,
                {
                    "finalPromptHead": prompt[:PROMPT_HEAD_CHARS],
                    "category": built.category,
                    "model": model,
                    "aspectRatioSent": output.aspect_ratio,
                    "resolutionSent": output.resolution,
                    "durationSecondsSent": output.duration_seconds,
                    "imageSource": image.method,
                    "imageRef": image.ref.uri,
                },
            )

            operation = await self._veo.submit(model, self._veo.build_request(prompt, image, output))
            status = await self._transition(job_id, status, JobStatus.PROCESSING, {"providerJobId": operation})

            op = await self._poll_until_done(job_id, operation)
            extracted = extract_video_uri(op)
            if not extracted.found or not extracted.url:
                raise NoArtifact("No video URL in operation result")
            logger.info("[veo.extract] job=%s extractor=%s", job_id, extracted.extractor)

            final_url, rehosted = await self._rehost(job_id, extracted.url)
            await self._debug(job_id, {"rehosted": rehosted, "extractor": extracted.extractor})
            status = await self._transition(job_id, status, JobStatus.READY, {"finalVideoUrl": final_url})
        except JobError as exc:
            if exc.marks_job:
                await self._fail(job, status, exc.persisted_error)
            raise
        except Exception as exc:  # noqa: BLE001 - unexpected failures become an internal job error
            message = truncate_message(str(exc) or exc.__class__.__name__)
            logger.exception("[orchestrator] job=%s unexpected failure", job_id)
            await self._fail(job, status, message)
            raise JobError(message) from exc

        await best_effort(
            "analytics",
            self._analytics.record(
                job.uid,
                EVENT_READY,
                job_id,
                finalVideoUrl=final_url,
                rehosted=rehosted,
                templateId=built.template_id,
            ),
        )
        return {"status": JobStatus.READY.value, "finalVideoUrl": final_url}

    async def _transition(
        self,
        job_id: str,
        current: JobStatus,
        target: JobStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> JobStatus:
        if not can_transition(current, target):
            raise RuntimeError(f"illegal status transition {current.value} -> {target.value}")
        payload: Dict[str, Any] = {"status": target.value}
        payload.update(fields or {})
        await self._store.update(job_id, payload)
        logger.info("[orchestrator] job=%s status %s -> %s", job_id, current.value, target.value)
        return target

    async def _fail(self, job: JobRecord, current: JobStatus, error: str) -> None:
        job_id = job.job_id or ""
        if can_transition(current, JobStatus.ERROR):
            try:
                await self._transition(job_id, current, JobStatus.ERROR, {"error": truncate_message(error)})
            except Exception:  # noqa: BLE001 - the original failure is re-raised by the caller
                logger.exception("[orchestrator] job=%s could not persist error=%s", job_id, error)
        await best_effort("analytics", self._analytics.record(job.uid, EVENT_FAILED, job_id, error=error))

    async def _debug(self, job_id: str, fields: Dict[str, Any]) -> None:
        await best_effort("debug", self._store.update(job_id, {f"debug.{k}": v for k, v in fields.items()}))

    async def _poll_until_done(self, job_id: str, operation: str) -> Dict[str, Any]:
        every = max(self._config.heartbeat_every, 1)
        for attempt in range(1, self._config.max_poll_attempts + 1):
            await self._sleep(self._config.poll_interval_seconds)
            op = await self._veo.poll(operation)
            if attempt % every == 0:
                await best_effort(
                    "heartbeat",
                    self._store.update(
                        job_id,
                        {"processing.heartbeat": self._store.timestamp(), "processing.pollAttempts": attempt},
                    ),
                )
            if op.get("done"):
                error = op.get("error")
                if error:
                    message = error.get("message") if isinstance(error, dict) else str(error)
                    raise ProviderPollError(message or "Veo operation failed")
                logger.info("[veo.poll] job=%s op=%s done after %d attempts", job_id, operation, attempt)
                return op
        logger.warning("[veo.poll] job=%s op=%s timed out", job_id, operation)
        raise PollTimeout("Veo operation timed out")

    async def _rehost(self, job_id: str, provider_url: str) -> Tuple[str, bool]:
        try:
            return await rehost_artifact(self._veo, self._artifacts, job_id, provider_url), True
        except RehostError as exc:
            logger.warning("[rehost] job=%s falling back to provider url: %s", job_id, exc)
            return provider_url, False


__all__ = ["EVENT_FAILED", "EVENT_READY", "GenerationOrchestrator"]
