"""Single-flight admission: one transactional check-and-set per job."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from app.errors import JobAlreadyFailed, JobNotFound, PermissionDenied
from app.schemas import JobRecord, JobStatus
from app.services.job_store import JobStore

logger = logging.getLogger("veo-service")

ALREADY_READY = "already_ready"
ALREADY_PENDING = "already_pending"

# Extra checks run inside the transaction after ownership and state checks.
# Raising aborts the transaction without touching the job.
Preflight = Callable[[JobRecord], None]


@dataclass(frozen=True)
class Admission:
    admitted: bool
    job: JobRecord
    reason: Optional[str] = None


async def admit(
    store: JobStore,
    job_id: str,
    caller_id: str,
    *,
    preflight: Optional[Preflight] = None,
    started_by: Optional[str] = None,
) -> Admission:
    started_at = store.timestamp()

    def _check(data: Optional[Dict[str, Any]]) -> Tuple[Admission, Optional[Dict[str, Any]]]:
        if data is None:
            raise JobNotFound("Job not found")
        job = JobRecord.from_document(job_id, data)
        if job.uid != caller_id:
            raise PermissionDenied("Not your job")
        if job.is_ready:
            return Admission(admitted=False, job=job, reason=ALREADY_READY), None
        if job.job_status is JobStatus.ERROR:
            raise JobAlreadyFailed(job.error)
        if job.processing.started_at:
            return Admission(admitted=False, job=job, reason=ALREADY_PENDING), None
        if preflight is not None:
            preflight(job)
        updates: Dict[str, Any] = {"processing.startedAt": started_at}
        if started_by:
            updates["processing.startedBy"] = started_by
        return Admission(admitted=True, job=job), updates

    admission = await store.run_transaction(job_id, _check)
    logger.info(
        "[gate.admit] job=%s admitted=%s reason=%s",
        job_id,
        admission.admitted,
        admission.reason,
        extra={"job_id": job_id},
    )
    return admission


__all__ = ["ALREADY_PENDING", "ALREADY_READY", "Admission", "Preflight", "admit"]
