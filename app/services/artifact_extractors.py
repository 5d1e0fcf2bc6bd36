"""Locate the generated video URL inside a completed Veo operation.

The provider has returned the artifact under several different nested shapes
over time, so extraction runs an ordered list of small extractors and keeps the
first hit. Each extractor returns an ``ExtractResult`` instead of raising.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

MAX_SCAN_DEPTH = 6
_PREFERRED_KEY_RX = re.compile(r"video|media|uri|url", re.IGNORECASE)


@dataclass(frozen=True)
class ExtractResult:
    extractor: str
    url: Optional[str] = None

    @property
    def found(self) -> bool:
        return bool(self.url)


def _get(obj: Any, *path: Any) -> Any:
    node = obj
    for key in path:
        if isinstance(key, int):
            if not isinstance(node, list) or len(node) <= key:
                return None
            node = node[key]
        else:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        if node is None:
            return None
    return node


def _first_url(values: Iterable[Any]) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _envelopes(op: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [env for env in (op.get("response"), op.get("result")) if isinstance(env, dict)]


def _sample_urls(sample: Any) -> Optional[str]:
    video = _get(sample, "video")
    return _first_url(
        [
            _get(video, "uri"),
            _get(video, "url"),
            _get(video, "signedUri"),
            _get(video, "gcsUri"),
            video if isinstance(video, str) else None,
            _get(sample, "videoUri"),
            _get(sample, "uri"),
        ]
    )


def from_generated_samples(op: Dict[str, Any]) -> ExtractResult:
    for env in _envelopes(op):
        for path in (
            ("generateVideoResponse", "generatedSamples", 0),
            ("generatedSamples", 0),
            ("generate_video_response", "generated_samples", 0),
        ):
            url = _sample_urls(_get(env, *path))
            if url:
                return ExtractResult("generated_samples", url)
    return ExtractResult("generated_samples")


def from_generated_videos(op: Dict[str, Any]) -> ExtractResult:
    for env in _envelopes(op):
        for key in ("generatedVideos", "generated_videos"):
            entry = _get(env, key, 0)
            video = _get(entry, "video")
            url = _first_url(
                [
                    _get(video, "uri"),
                    _get(video, "url"),
                    video if isinstance(video, str) else None,
                    _get(entry, "uri"),
                ]
            )
            if url:
                return ExtractResult("generated_videos", url)
    return ExtractResult("generated_videos")


def from_top_level_uri(op: Dict[str, Any]) -> ExtractResult:
    url = _first_url(_get(env, "videoUri") for env in _envelopes(op))
    return ExtractResult("video_uri", url)


def _scan(node: Any, depth: int) -> Optional[str]:
    if depth > MAX_SCAN_DEPTH:
        return None
    if isinstance(node, str):
        return node if node.startswith(("http://", "https://")) else None
    if isinstance(node, list):
        for item in node:
            found = _scan(item, depth + 1)
            if found:
                return found
        return None
    if isinstance(node, dict):
        items: List[Tuple[str, Any]] = list(node.items())
        # Keys that look like media references are visited first.
        items.sort(key=lambda kv: 0 if _PREFERRED_KEY_RX.search(str(kv[0])) else 1)
        for _, value in items:
            found = _scan(value, depth + 1)
            if found:
                return found
    return None


def from_deep_scan(op: Dict[str, Any]) -> ExtractResult:
    for env in _envelopes(op):
        url = _scan(env, 0)
        if url:
            return ExtractResult("deep_scan", url)
    return ExtractResult("deep_scan")


Extractor = Callable[[Dict[str, Any]], ExtractResult]

EXTRACTORS: Tuple[Extractor, ...] = (
    from_generated_samples,
    from_generated_videos,
    from_top_level_uri,
    from_deep_scan,
)


def extract_video_uri(op: Dict[str, Any], extractors: Iterable[Extractor] = EXTRACTORS) -> ExtractResult:
    for extractor in extractors:
        result = extractor(op)
        if result.found:
            return result
    return ExtractResult("none")


__all__ = [
    "EXTRACTORS",
    "ExtractResult",
    "extract_video_uri",
    "from_deep_scan",
    "from_generated_samples",
    "from_generated_videos",
    "from_top_level_uri",
]
