"""Job record persistence: Firestore in production, an in-process dict for local runs."""
from __future__ import annotations

import copy
import datetime as dt
import logging
import threading
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, TypeVar

from google.cloud import firestore
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger("veo-service")

T = TypeVar("T")

# Receives the current document (``None`` when missing) and returns
# ``(result, updates)``; ``updates`` uses dotted field paths and may be empty.
TransactionFn = Callable[[Optional[Dict[str, Any]]], Tuple[T, Optional[Dict[str, Any]]]]


class JobStore(Protocol):
    async def get(self, job_id: str) -> Optional[Dict[str, Any]]: ...

    async def update(self, job_id: str, fields: Dict[str, Any]) -> None: ...

    async def run_transaction(self, job_id: str, fn: TransactionFn) -> Any: ...

    def timestamp(self) -> Any: ...


class FirestoreJobStore:
    def __init__(self, client: firestore.Client, collection: str = "adJobs") -> None:
        self._client = client
        self._collection = collection

    def _doc(self, job_id: str) -> firestore.DocumentReference:
        return self._client.collection(self._collection).document(job_id)

    def timestamp(self) -> Any:
        return firestore.SERVER_TIMESTAMP

    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        snapshot = await run_in_threadpool(self._doc(job_id).get)
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    async def update(self, job_id: str, fields: Dict[str, Any]) -> None:
        payload = dict(fields)
        payload["updatedAt"] = firestore.SERVER_TIMESTAMP
        await run_in_threadpool(self._doc(job_id).update, payload)

    async def run_transaction(self, job_id: str, fn: TransactionFn) -> Any:
        doc_ref = self._doc(job_id)

        def _run() -> Any:
            transaction = self._client.transaction()

            @firestore.transactional
            def _apply(transaction: firestore.Transaction, doc_ref: firestore.DocumentReference) -> Any:
                snapshot = doc_ref.get(transaction=transaction)
                data = (snapshot.to_dict() or {}) if snapshot.exists else None
                result, updates = fn(data)
                if updates:
                    payload = dict(updates)
                    payload["updatedAt"] = firestore.SERVER_TIMESTAMP
                    transaction.update(doc_ref, payload)
                return result

            return _apply(transaction, doc_ref)

        return await run_in_threadpool(_run)


def _apply_dotted(target: Dict[str, Any], fields: Dict[str, Any]) -> None:
    for key, value in fields.items():
        parts = key.split(".")
        node = target
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)


class InMemoryJobStore:
    """Process-local store with the same merge semantics as Firestore ``update``."""

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self._docs: Dict[str, Dict[str, Any]] = copy.deepcopy(documents or {})
        self._lock = threading.Lock()

    def timestamp(self) -> Any:
        return dt.datetime.now(dt.timezone.utc)

    def put(self, job_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._docs[job_id] = copy.deepcopy(data)

    def snapshot(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._docs.get(job_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self.snapshot(job_id)

    async def update(self, job_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            doc = self._docs.get(job_id)
            if doc is None:
                raise KeyError(f"job {job_id} does not exist")
            _apply_dotted(doc, fields)
            doc["updatedAt"] = self.timestamp()

    async def run_transaction(self, job_id: str, fn: TransactionFn) -> Any:
        with self._lock:
            current = self._docs.get(job_id)
            result, updates = fn(copy.deepcopy(current) if current is not None else None)
            if updates:
                if current is None:
                    raise KeyError(f"job {job_id} does not exist")
                _apply_dotted(current, updates)
                current["updatedAt"] = self.timestamp()
            return result


__all__ = ["FirestoreJobStore", "InMemoryJobStore", "JobStore", "TransactionFn"]
