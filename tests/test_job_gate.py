import asyncio

import pytest

from app.errors import JobAlreadyFailed, JobNotFound, MissingCredential, PermissionDenied
from app.services.job_gate import ALREADY_PENDING, ALREADY_READY, admit
from app.services.job_store import InMemoryJobStore
from conftest import make_job


def test_admits_once_and_sets_marker():
    store = InMemoryJobStore({"job-1": make_job()})

    first = asyncio.run(admit(store, "job-1", "user-1"))
    second = asyncio.run(admit(store, "job-1", "user-1"))

    assert first.admitted is True
    assert second.admitted is False
    assert second.reason == ALREADY_PENDING
    assert store.snapshot("job-1")["processing"]["startedAt"] is not None


def test_concurrent_admission_is_single_flight():
    store = InMemoryJobStore({"job-1": make_job()})

    async def race():
        return await asyncio.gather(*(admit(store, "job-1", "user-1") for _ in range(8)))

    results = asyncio.run(race())

    assert sum(1 for r in results if r.admitted) == 1
    assert all(r.reason == ALREADY_PENDING for r in results if not r.admitted)


def test_ready_job_is_not_admitted():
    store = InMemoryJobStore({"job-1": make_job(status="ready", finalVideoUrl="https://v.example/x.mp4")})

    result = asyncio.run(admit(store, "job-1", "user-1"))

    assert result.admitted is False
    assert result.reason == ALREADY_READY
    assert result.job.final_video_url == "https://v.example/x.mp4"
    assert "startedAt" not in store.snapshot("job-1").get("processing", {})


def test_ready_without_url_is_not_treated_as_done():
    store = InMemoryJobStore({"job-1": make_job(status="ready")})

    assert asyncio.run(admit(store, "job-1", "user-1")).admitted is True


def test_failed_job_raises():
    store = InMemoryJobStore({"job-1": make_job(status="error", error="no_video")})

    with pytest.raises(JobAlreadyFailed) as excinfo:
        asyncio.run(admit(store, "job-1", "user-1"))

    assert excinfo.value.reason == "no_video"


def test_missing_and_foreign_jobs():
    store = InMemoryJobStore({"job-1": make_job()})

    with pytest.raises(JobNotFound):
        asyncio.run(admit(store, "nope", "user-1"))
    with pytest.raises(PermissionDenied):
        asyncio.run(admit(store, "job-1", "intruder"))


def test_preflight_failure_aborts_without_mutation():
    store = InMemoryJobStore({"job-1": make_job()})
    before = store.snapshot("job-1")

    def preflight(job):
        raise MissingCredential("no key")

    with pytest.raises(MissingCredential):
        asyncio.run(admit(store, "job-1", "user-1", preflight=preflight))

    assert store.snapshot("job-1") == before


def test_started_by_is_recorded():
    store = InMemoryJobStore({"job-1": make_job()})

    asyncio.run(admit(store, "job-1", "user-1", started_by="queue_trigger"))

    assert store.snapshot("job-1")["processing"]["startedBy"] == "queue_trigger"
