import asyncio

import httpx
import pytest

from app.errors import MissingCredential, ProviderPollError, ProviderRejected, ProviderSubmissionError
from app.schemas import JobRecord
from app.services.veo_client import VeoClient, select_output_format
from conftest import API_BASE, veo_config


def _client(handler, **overrides) -> VeoClient:
    return VeoClient(veo_config(**overrides), transport=httpx.MockTransport(handler))


def _job(**doc) -> JobRecord:
    return JobRecord.from_document("job-1", doc)


@pytest.mark.parametrize(
    "doc,expected",
    [
        ({"aspectRatio": "16:9", "promptV1": {"output": {"resolution": "1080p"}}}, ("16:9", "1080p")),
        ({"aspectRatio": "9:16", "promptV1": {"output": {"resolution": "1080p"}}}, ("9:16", "720p")),
        ({"aspectRatio": "1:1"}, ("9:16", "720p")),
        ({"promptV1": {"output": {"resolution": "16:9"}}}, ("16:9", "720p")),
        ({"brief": {"aspectRatio": "16:9"}}, ("16:9", "720p")),
        ({}, ("9:16", "720p")),
    ],
)
def test_select_output_format(doc, expected):
    output = select_output_format(_job(**doc))

    assert (output.aspect_ratio, output.resolution) == expected


def test_duration_comes_from_prompt_spec():
    assert select_output_format(_job(promptV1={"output": {"duration_s": 8}})).duration_seconds == 8
    assert select_output_format(_job()).duration_seconds == 5


def test_submit_returns_operation_name():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        return httpx.Response(200, json={"operation": "operations/xyz"})

    name = asyncio.run(_client(handler).submit("veo-3.0-generate-001", {"instances": [{"prompt": "p"}]}))

    assert name == "operations/xyz"
    assert seen["url"] == f"{API_BASE}/models/veo-3.0-generate-001:predictLongRunning"
    assert seen["key"] == "test-key"


def test_submit_without_key_fails_before_network():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"name": "x"})

    with pytest.raises(MissingCredential):
        asyncio.run(_client(handler, api_key=None).submit("m", {}))
    assert calls == []


@pytest.mark.parametrize("status,exc_type", [(400, ProviderRejected), (403, ProviderRejected), (429, ProviderSubmissionError), (500, ProviderSubmissionError)])
def test_submit_error_classification(status, exc_type):
    def handler(request):
        return httpx.Response(status, json={"error": {"message": "nope"}})

    with pytest.raises(exc_type):
        asyncio.run(_client(handler).submit("m", {}))


def test_submit_without_operation_name():
    def handler(request):
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(ProviderSubmissionError):
        asyncio.run(_client(handler).submit("m", {}))


def test_poll_uses_operation_path_and_wraps_errors():
    def handler(request):
        if request.url.path.endswith("/operations/ok"):
            return httpx.Response(200, json={"done": False})
        return httpx.Response(502, text="bad gateway")

    client = _client(handler)

    assert asyncio.run(client.poll("models/m/operations/ok")) == {"done": False}
    with pytest.raises(ProviderPollError):
        asyncio.run(client.poll("models/m/operations/broken"))


def test_download_sends_key_only_to_api_host():
    seen = []

    def handler(request):
        seen.append((request.url.host, request.headers.get("x-goog-api-key")))
        return httpx.Response(200, content=b"video", headers={"content-type": "video/mp4"})

    client = _client(handler)
    data, content_type = asyncio.run(client.download(f"{API_BASE}/files/a:download?alt=media"))
    asyncio.run(client.download("https://storage.googleapis.com/bucket/video.mp4"))

    assert data == b"video"
    assert content_type == "video/mp4"
    assert seen == [
        ("generativelanguage.googleapis.com", "test-key"),
        ("storage.googleapis.com", None),
    ]
