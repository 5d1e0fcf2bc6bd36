"""HTTP client for Veo long-running video generation (Generative Language API)."""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote, urlparse

import httpx

from app.config import VeoConfig
from app.errors import MissingCredential, ProviderPollError, ProviderRejected, ProviderSubmissionError
from app.schemas import JobRecord
from app.services.image_resolver import ResolvedImage

logger = logging.getLogger("veo-service")

ASPECT_LANDSCAPE = "16:9"
ASPECT_PORTRAIT = "9:16"
DEFAULT_DURATION_SECONDS = 5
_RETRYABLE_STATUS = {408, 429}
_BODY_LOG_LIMIT = 300


@dataclass(frozen=True)
class OutputFormat:
    aspect_ratio: str
    resolution: str
    duration_seconds: int


def select_output_format(job: JobRecord) -> OutputFormat:
    """Only 16:9 and 9:16 are sent; 1080p is reserved for 16:9 when explicitly requested."""

    spec = job.prompt_v1
    requested_resolution = (spec.output.resolution or "") if spec else ""
    raw_aspect = job.aspect_ratio or (job.brief.aspect_ratio if job.brief else None)
    if not raw_aspect and ":" in requested_resolution:
        raw_aspect = requested_resolution
    aspect = ASPECT_LANDSCAPE if (raw_aspect or "").strip() == ASPECT_LANDSCAPE else ASPECT_PORTRAIT

    resolution = "720p"
    if aspect == ASPECT_LANDSCAPE and "1080" in requested_resolution:
        resolution = "1080p"

    duration = DEFAULT_DURATION_SECONDS
    if spec and spec.output.duration_s:
        duration = max(int(round(spec.output.duration_s)), 1)
    return OutputFormat(aspect_ratio=aspect, resolution=resolution, duration_seconds=duration)


def _body_excerpt(response: httpx.Response) -> str:
    try:
        return response.text[:_BODY_LOG_LIMIT]
    except Exception:  # noqa: BLE001 - undecodable body
        return "<binary>"


class VeoClient:
    def __init__(self, config: VeoConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._config = config
        self._transport = transport
        self._api_host = urlparse(config.api_base).netloc.lower()

    @property
    def has_credential(self) -> bool:
        return self._config.is_configured

    def _headers(self) -> Dict[str, str]:
        if not self._config.api_key:
            raise MissingCredential("VEO_API_KEY is not configured")
        return {"x-goog-api-key": self._config.api_key, "Content-Type": "application/json"}

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=timeout, follow_redirects=True)

    def build_request(
        self,
        prompt: str,
        image: Optional[ResolvedImage],
        output: OutputFormat,
    ) -> Dict[str, Any]:
        instance: Dict[str, Any] = {"prompt": prompt}
        if image is not None and image.is_inline:
            instance["image"] = {
                "bytesBase64Encoded": base64.b64encode(image.data or b"").decode("ascii"),
                "mimeType": image.mime_type,
            }
        elif image is not None and image.url:
            instance["image"] = {"uri": image.url}
        parameters: Dict[str, Any] = {
            "negativePrompt": self._config.negative_prompt,
            "aspectRatio": output.aspect_ratio,
            "resolution": output.resolution,
            "durationSeconds": output.duration_seconds,
            "sampleCount": 1,
            "personGeneration": "allow_adult",
        }
        return {"instances": [instance], "parameters": parameters}

    async def submit(self, model: str, payload: Dict[str, Any]) -> str:
        """Start a long-running generation and return its operation name."""

        headers = self._headers()
        url = f"{self._config.api_base}/models/{quote(model, safe='')}:predictLongRunning"
        try:
            async with self._client(self._config.submit_timeout_seconds) as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            body = _body_excerpt(exc.response)
            logger.error("[veo.submit] model=%s status=%s body=%s", model, status, body)
            if 400 <= status < 500 and status not in _RETRYABLE_STATUS:
                raise ProviderRejected(f"Veo rejected request ({status}): {body}") from exc
            raise ProviderSubmissionError(f"Veo submit failed ({status}): {body}") from exc
        except httpx.HTTPError as exc:
            logger.error("[veo.submit] model=%s transport error: %s", model, exc)
            raise ProviderSubmissionError(f"Veo submit failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderSubmissionError("Veo submit returned a non-JSON body") from exc

        name = None
        if isinstance(data, dict):
            name = data.get("name") or data.get("operation") or data.get("id")
        if not name or not isinstance(name, str):
            raise ProviderSubmissionError("Veo submit returned no operation name")
        logger.info("[veo.submit] model=%s operation=%s", model, name)
        return name

    async def poll(self, operation_name: str) -> Dict[str, Any]:
        headers = self._headers()
        url = f"{self._config.api_base}/{operation_name.lstrip('/')}"
        try:
            async with self._client(self._config.poll_timeout_seconds) as client:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            body = _body_excerpt(exc.response)
            logger.error("[veo.poll] op=%s status=%s body=%s", operation_name, exc.response.status_code, body)
            raise ProviderPollError(f"Veo poll failed ({exc.response.status_code}): {body}") from exc
        except httpx.HTTPError as exc:
            raise ProviderPollError(f"Veo poll failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderPollError("Veo poll returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise ProviderPollError("Veo poll returned an unexpected payload")
        return data

    async def download(self, url: str) -> Tuple[bytes, Optional[str]]:
        """Fetch a generated artifact; the API key only accompanies requests to the API host."""

        headers: Dict[str, str] = {}
        if urlparse(url).netloc.lower() == self._api_host and self._config.api_key:
            headers["x-goog-api-key"] = self._config.api_key
        async with self._client(self._config.download_timeout_seconds) as client:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
            return response.content, response.headers.get("content-type")


__all__ = [
    "ASPECT_LANDSCAPE",
    "ASPECT_PORTRAIT",
    "OutputFormat",
    "VeoClient",
    "select_output_format",
]
