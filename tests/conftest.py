from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from app.config import VeoConfig
from app.services.analytics import InMemoryAnalyticsSink
from app.services.gcs_storage import StoredObject
from app.services.job_store import InMemoryJobStore
from app.services.orchestrator import GenerationOrchestrator
from app.services.rehost import FirebaseArtifactStore
from app.services.storage_refs import ObjectRef
from app.services.veo_client import VeoClient

API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_BUCKET = "demo.appspot.com"
OPERATION_NAME = "models/veo-3.0-generate-001/operations/op-123"
VIDEO_URL = f"{API_BASE}/files/vid-1:download?alt=media"
IMAGE_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"


class FakeObjectStorage:
    def __init__(self, default_bucket: Optional[str] = DEFAULT_BUCKET) -> None:
        self.default_bucket = default_bucket
        self.objects: Dict[Tuple[str, str], Tuple[bytes, Optional[str]]] = {}
        self.tokens: Dict[Tuple[str, str], str] = {}
        self.uploads: List[Dict[str, Any]] = []
        self.fail_exists = False
        self.fail_download = False
        self.fail_signed = False
        self.fail_upload = False

    def add(self, bucket: str, path: str, data: bytes = IMAGE_BYTES, content_type: Optional[str] = "image/jpeg") -> None:
        self.objects[(bucket, path)] = (data, content_type)

    async def exists(self, ref: ObjectRef) -> bool:
        if self.fail_exists:
            raise RuntimeError("exists unavailable")
        return (ref.bucket, ref.path) in self.objects

    async def download(self, ref: ObjectRef) -> StoredObject:
        if self.fail_download:
            raise RuntimeError("download unavailable")
        data, content_type = self.objects[(ref.bucket, ref.path)]
        return StoredObject(data=data, content_type=content_type)

    async def signed_url(self, ref: ObjectRef, ttl_seconds: int) -> str:
        if self.fail_signed:
            raise RuntimeError("signing unavailable")
        return f"https://storage.googleapis.com/{ref.bucket}/{ref.path}?X-Goog-Expires={ttl_seconds}"

    async def download_token(self, ref: ObjectRef) -> str:
        return self.tokens.setdefault((ref.bucket, ref.path), "tok-123")

    async def upload(self, ref: ObjectRef, data: bytes, content_type: str, metadata: Optional[Dict[str, str]] = None) -> None:
        if self.fail_upload:
            raise RuntimeError("upload unavailable")
        self.uploads.append({"ref": ref, "data": data, "content_type": content_type, "metadata": metadata or {}})
        self.objects[(ref.bucket, ref.path)] = (data, content_type)


class FailingAnalyticsSink:
    def __init__(self) -> None:
        self.calls = 0

    async def record(self, uid: Optional[str], event: str, job_id: str, **context: Any) -> None:
        self.calls += 1
        raise RuntimeError("analytics down")


class RecordingJobStore(InMemoryJobStore):
    """In-memory store that remembers every status it was asked to write."""

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        super().__init__(documents)
        self.statuses: List[str] = []
        self.fail_fields: set = set()

    async def update(self, job_id: str, fields: Dict[str, Any]) -> None:
        if self.fail_fields.intersection(fields):
            raise RuntimeError("store write rejected")
        if "status" in fields:
            self.statuses.append(fields["status"])
        await super().update(job_id, fields)


def done_operation(url: str = VIDEO_URL) -> Dict[str, Any]:
    return {
        "name": OPERATION_NAME,
        "done": True,
        "response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": url}}]}},
    }


class FakeVeoApi:
    """``httpx.MockTransport`` handler emulating submit, poll and artifact download."""

    def __init__(
        self,
        *,
        done_on: Optional[int] = 3,
        final_operation: Optional[Dict[str, Any]] = None,
        submit_status: int = 200,
        download_status: int = 200,
        video_bytes: bytes = b"mp4-bytes",
    ) -> None:
        self.done_on = done_on
        self.final_operation = final_operation if final_operation is not None else done_operation()
        self.submit_status = submit_status
        self.download_status = download_status
        self.video_bytes = video_bytes
        self.requests: List[httpx.Request] = []
        self.polls = 0

    @property
    def submissions(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    @property
    def downloads(self) -> List[httpx.Request]:
        return [r for r in self.requests if "/files/" in r.url.path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith(":predictLongRunning"):
            if self.submit_status != 200:
                return httpx.Response(self.submit_status, json={"error": {"message": "request rejected"}})
            return httpx.Response(200, json={"name": OPERATION_NAME})
        if request.method == "GET" and "/operations/" in path:
            self.polls += 1
            if self.done_on is not None and self.polls >= self.done_on:
                return httpx.Response(200, json=self.final_operation)
            return httpx.Response(200, json={"name": OPERATION_NAME, "done": False})
        if request.method == "GET" and "/files/" in path:
            return httpx.Response(self.download_status, content=self.video_bytes, headers={"content-type": "video/mp4"})
        return httpx.Response(404, json={"error": {"message": "unknown route"}})


def veo_config(**overrides: Any) -> VeoConfig:
    values: Dict[str, Any] = {
        "api_key": "test-key",
        "api_base": API_BASE,
        "poll_interval_seconds": 0,
        "max_poll_attempts": 5,
        "heartbeat_every": 3,
    }
    values.update(overrides)
    return VeoConfig(**values)


def make_job(**overrides: Any) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "uid": "user-1",
        "status": "pending",
        "aspectRatio": "16:9",
        "promptV1": {
            "product": {"description": "stainless steel watch", "imageGsPath": "gs://bucket/obj.jpg"},
            "style": "cinematic",
            "output": {"resolution": "1080p"},
            "cta": {"key": "shop", "copy": "Shop the collection"},
        },
        "brief": {"brand": {"name": "Chrono", "slogan": "Time, refined"}},
    }
    doc.update(copy.deepcopy(overrides))
    return doc


def build_orchestrator(
    store: InMemoryJobStore,
    storage: FakeObjectStorage,
    api: FakeVeoApi,
    *,
    analytics: Any = None,
    artifacts: Any = None,
    config: Optional[VeoConfig] = None,
) -> GenerationOrchestrator:
    config = config or veo_config()
    return GenerationOrchestrator(
        store=store,
        storage=storage,
        veo=VeoClient(config, transport=httpx.MockTransport(api)),
        artifacts=artifacts or FirebaseArtifactStore(storage, storage.default_bucket),
        analytics=analytics if analytics is not None else InMemoryAnalyticsSink(),
        config=config,
    )


@pytest.fixture
def storage() -> FakeObjectStorage:
    storage = FakeObjectStorage()
    storage.add("bucket", "obj.jpg")
    return storage


@pytest.fixture
def store() -> RecordingJobStore:
    return RecordingJobStore({"job-1": make_job()})


@pytest.fixture
def api() -> FakeVeoApi:
    return FakeVeoApi()


@pytest.fixture
def analytics() -> InMemoryAnalyticsSink:
    return InMemoryAnalyticsSink()
