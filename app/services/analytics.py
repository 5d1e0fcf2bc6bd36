"""Fire-and-forget analytics events and the best-effort wrapper for side calls."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Awaitable, Dict, List, Optional, Protocol, TypeVar

from google.cloud import firestore
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger("veo-service")

T = TypeVar("T")


class AnalyticsSink(Protocol):
    async def record(self, uid: Optional[str], event: str, job_id: str, **context: Any) -> None: ...


async def best_effort(label: str, awaitable: Awaitable[T]) -> Optional[T]:
    """Await a side call, logging and discarding any failure."""

    try:
        return await awaitable
    except Exception as exc:  # noqa: BLE001 - side calls never affect the job outcome
        logger.warning("[best-effort:%s] ignored failure: %s", label, exc, extra={"side_call": label})
        return None


class FirestoreAnalyticsSink:
    def __init__(self, client: firestore.Client, collection: str = "analyticsEvents") -> None:
        self._client = client
        self._collection = collection

    async def record(self, uid: Optional[str], event: str, job_id: str, **context: Any) -> None:
        payload: Dict[str, Any] = {
            "uid": uid,
            "event": event,
            "jobId": job_id,
            **context,
            "createdAt": firestore.SERVER_TIMESTAMP,
        }
        await run_in_threadpool(self._client.collection(self._collection).add, payload)


class InMemoryAnalyticsSink:
    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    async def record(self, uid: Optional[str], event: str, job_id: str, **context: Any) -> None:
        self.events.append(
            {
                "uid": uid,
                "event": event,
                "jobId": job_id,
                **context,
                "createdAt": dt.datetime.now(dt.timezone.utc),
            }
        )


__all__ = ["AnalyticsSink", "FirestoreAnalyticsSink", "InMemoryAnalyticsSink", "best_effort"]
