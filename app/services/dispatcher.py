"""Start generation when a job document is written in the ``queued`` state."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from app.errors import JobError
from app.schemas import JobStatus, parse_status
from app.services.orchestrator import GenerationOrchestrator

logger = logging.getLogger("veo-service")

STARTED_BY = "queue_trigger"

SKIP_DELETED = "deleted"
SKIP_STORYBOARD = "storyboard"
SKIP_TERMINAL = "terminal"
SKIP_STARTED = "already_started"
SKIP_INCOMPLETE = "incomplete"
SKIP_NOT_QUEUED = "not_queued"


def _is_storyboard(doc: Dict[str, Any]) -> bool:
    processing = doc.get("processing") or {}
    return (
        str(doc.get("mode") or "").lower() == "storyboard"
        or str(doc.get("templateId") or "").lower().startswith("storyboard")
        or isinstance(doc.get("storyboardPrompt"), str)
        or str(processing.get("startedBy") or "").lower() == "storyboard_v2"
    )


def _has_gs_image(doc: Dict[str, Any]) -> bool:
    prompt = doc.get("promptV1")
    product = prompt.get("product") if isinstance(prompt, dict) else None
    if not isinstance(product, dict):
        product = {}
    for value in (product.get("imageGsPath"), doc.get("inputImagePath")):
        if isinstance(value, str) and value.startswith("gs://"):
            return True
    return False


def skip_reason(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Optional[str]:
    """Why a write should not start generation, or ``None`` when it should."""

    if not after:
        return SKIP_DELETED
    if _is_storyboard(after):
        return SKIP_STORYBOARD
    if parse_status(after.get("status")).is_terminal:
        return SKIP_TERMINAL
    if (after.get("processing") or {}).get("startedAt"):
        return SKIP_STARTED
    if not after.get("uid") or not after.get("promptV1") or not _has_gs_image(after):
        return SKIP_INCOMPLETE
    became_queued = parse_status(after.get("status")) is JobStatus.QUEUED
    was_queued = before is not None and parse_status(before.get("status")) is JobStatus.QUEUED
    if not (became_queued or was_queued):
        return SKIP_NOT_QUEUED
    return None


async def on_job_written(
    orchestrator: GenerationOrchestrator,
    job_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    reason = skip_reason(before, after)
    if reason is not None:
        logger.info("[dispatch] job=%s skipped reason=%s", job_id, reason)
        return {"started": False, "reason": reason}

    uid = str((after or {}).get("uid"))
    logger.info("[dispatch] job=%s starting generation for uid=%s", job_id, uid)
    try:
        result = await orchestrator.start_job(job_id, uid, started_by=STARTED_BY)
    except JobError as exc:
        logger.error("[dispatch] job=%s generation failed: %s (%s)", job_id, exc.message, exc.code)
        return {"started": True, "status": JobStatus.ERROR.value, "error": exc.persisted_error}
    return {"started": True, **result}


__all__ = ["STARTED_BY", "on_job_written", "skip_reason"]
