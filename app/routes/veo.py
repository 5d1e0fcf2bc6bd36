from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from app.config import Settings, get_settings
from app.dependencies import get_orchestrator
from app.errors import JobError, Unauthenticated
from app.schemas import JobWrittenEvent, StartJobRequest, StartJobResponse
from app.services.dispatcher import on_job_written
from app.services.firebase import verify_id_token
from app.services.orchestrator import GenerationOrchestrator

logger = logging.getLogger("veo-service")

router = APIRouter(prefix="/api/veo", tags=["veo"])

_bearer = HTTPBearer(auto_error=False)


def _http_error(exc: JobError) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": exc.code, "message": exc.message},
        headers=headers,
    )


async def get_caller_uid(
    token: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> str:
    """Verify the Firebase ID token and return the caller's uid."""

    if token is None or not token.credentials:
        raise _http_error(Unauthenticated("User must be signed in."))
    claims = await run_in_threadpool(verify_id_token, settings.firebase, token.credentials)
    uid = (claims or {}).get("uid")
    if not uid:
        raise _http_error(Unauthenticated("Invalid authentication credentials"))
    return str(uid)


@router.post("/start", response_model=StartJobResponse, response_model_exclude_none=True)
async def start_job(
    payload: StartJobRequest,
    uid: str = Depends(get_caller_uid),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    try:
        return await orchestrator.start_job(payload.job_id, uid)
    except JobError as exc:
        logger.warning("[veo.start] job=%s failed code=%s message=%s", payload.job_id, exc.code, exc.message)
        raise _http_error(exc) from exc


@router.post("/events/job-written")
async def job_written(
    event: JobWrittenEvent,
    x_task_secret: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    expected = settings.task_secret
    if not expected or not secrets.compare_digest(x_task_secret or "", expected):
        raise HTTPException(
            status_code=401,
            detail={"error": "unauthenticated", "message": "invalid task secret"},
        )
    return await on_job_written(orchestrator, event.job_id, event.before, event.after)


__all__ = ["get_caller_uid", "router"]
