import asyncio
import dataclasses

import pytest
from botocore.exceptions import ClientError

from app.config import R2Config
from app.errors import RehostError
from app.services import r2_client
from app.services.rehost import FirebaseArtifactStore, R2ArtifactStore, rehost_artifact


class DummyS3:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = []

    def put_object(self, **kwargs):
        self.calls.append(kwargs)
        if self.fail:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
        return {}


class _StaticVeo:
    async def download(self, url):
        return b"mp4", "video/mp4"


R2 = R2Config(
    endpoint="https://acct.r2.cloudflarestorage.com",
    access_key="key",
    secret_key="secret",
    bucket="videos",
    public_base="https://cdn.example.com/",
)


def test_make_key_sanitises_job_id():
    assert r2_client.make_key("generated_ads/", "job 1/x") == "generated_ads/job_1_x/output.mp4"


def test_r2_store_returns_public_url(monkeypatch):
    s3 = DummyS3()
    monkeypatch.setattr(r2_client, "get_client", lambda config: s3)

    url = asyncio.run(R2ArtifactStore(R2).store("job-1", b"mp4", "video/mp4"))

    assert url == "https://cdn.example.com/generated_ads/job-1/output.mp4"
    assert s3.calls == [
        {"Bucket": "videos", "Key": "generated_ads/job-1/output.mp4", "Body": b"mp4", "ContentType": "video/mp4"}
    ]


def test_r2_store_failure_raises_rehost_error(monkeypatch):
    monkeypatch.setattr(r2_client, "get_client", lambda config: DummyS3(fail=True))

    with pytest.raises(RehostError):
        asyncio.run(R2ArtifactStore(R2).store("job-1", b"mp4", "video/mp4"))


def test_r2_store_without_public_base_raises(monkeypatch):
    monkeypatch.setattr(r2_client, "get_client", lambda config: DummyS3())
    config = dataclasses.replace(R2, public_base=None)

    with pytest.raises(RehostError):
        asyncio.run(R2ArtifactStore(config).store("job-1", b"mp4", "video/mp4"))


def test_firebase_store_requires_bucket(storage):
    with pytest.raises(RehostError):
        asyncio.run(FirebaseArtifactStore(storage, None).store("job-1", b"mp4", "video/mp4"))


def test_firebase_store_uses_prefix_and_token(storage):
    url = asyncio.run(FirebaseArtifactStore(storage, "owned", prefix="ads").store("job-9", b"mp4", "video/mp4"))

    upload = storage.uploads[0]
    assert upload["ref"].uri == "gs://owned/ads/job-9/output.mp4"
    token = upload["metadata"]["firebaseStorageDownloadTokens"]
    assert url == f"https://firebasestorage.googleapis.com/v0/b/owned/o/ads%2Fjob-9%2Foutput.mp4?alt=media&token={token}"


def test_r2_client_reads_settings_not_env(monkeypatch):
    monkeypatch.delenv("R2_BUCKET", raising=False)
    monkeypatch.delenv("R2_PUBLIC_BASE", raising=False)
    s3 = DummyS3()
    seen = []
    monkeypatch.setattr(r2_client, "get_client", lambda config: seen.append(config) or s3)

    url = r2_client.put_bytes(R2, "ads/job-2/output.mp4", b"mp4", content_type="video/mp4")

    assert url == "https://cdn.example.com/ads/job-2/output.mp4"
    assert seen == [R2]
    assert s3.calls[0]["Bucket"] == "videos"


def test_r2_client_requires_credentials():
    with pytest.raises(RuntimeError):
        r2_client.get_client(R2Config(bucket="videos"))


def test_unconfigured_r2_store_surfaces_rehost_error():
    with pytest.raises(RehostError):
        asyncio.run(rehost_artifact(_StaticVeo(), R2ArtifactStore(R2Config()), "job-1", "https://x/v.mp4"))
