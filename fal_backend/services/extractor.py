"""Locate playable media URLs and job handles in loosely shaped upstream payloads.

Payloads are plain JSON values: ``None``, ``bool``, ``int``, ``float``, ``str``,
``list`` or ``dict`` with string keys. Upstream shapes are not fixed, so lookups
check a few known locations first and then search everything.
"""

from __future__ import annotations

import re
from typing import Any, Iterator, Union

JSONValue = Union[None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"]]

MEDIA_URL_PATTERN = re.compile(
    r"^https?://\S+?\.(?:mp4|webm|mov|m4v|mkv|m3u8)(?:\?\S*)?$",
    re.IGNORECASE,
)

# Ordered by how often each shape has been seen in upstream responses.
MEDIA_URL_FIELDS: tuple[tuple[str, ...], ...] = (
    ("video_url",),
    ("url",),
    ("output", "video_url"),
    ("output", "url"),
    ("video", "url"),
    ("data", "video_url"),
    ("data", "url"),
    ("data", "video", "url"),
)

JOB_ID_FIELDS: tuple[tuple[str, ...], ...] = (
    ("request_id",),
    ("id",),
    ("job_id",),
    ("data", "request_id"),
    ("data", "id"),
    ("data", "job_id"),
)

IN_PROGRESS_PATTERN = re.compile(r"pending|running|processing|queued|in_queue|in_progress", re.IGNORECASE)


def is_media_url(value: Any) -> bool:
    return isinstance(value, str) and MEDIA_URL_PATTERN.match(value.strip()) is not None


def find_media_url(value: JSONValue) -> str | None:
    if value is None:
        return None
    for path in MEDIA_URL_FIELDS:
        candidate = _lookup(value, path)
        if is_media_url(candidate):
            return candidate.strip()
    for text in iter_strings(value):
        if is_media_url(text):
            return text.strip()
    return None


def find_job_id(value: JSONValue) -> str | None:
    for path in JOB_ID_FIELDS:
        candidate = _lookup(value, path)
        if isinstance(candidate, bool):
            continue
        if isinstance(candidate, int):
            return str(candidate)
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def looks_in_progress(text: str | None) -> bool:
    return bool(text) and IN_PROGRESS_PATTERN.search(text) is not None


def iter_strings(value: JSONValue) -> Iterator[str]:
    """Yield every string in ``value`` depth first, keys in insertion order."""
    stack: list[Any] = [value]
    seen: set[int] = set()
    while stack:
        current = stack.pop()
        if isinstance(current, str):
            yield current
        elif isinstance(current, (dict, list)):
            if id(current) in seen:
                continue
            seen.add(id(current))
            children = list(current.values()) if isinstance(current, dict) else list(current)
            stack.extend(reversed(children))


def _lookup(value: Any, path: tuple[str, ...]) -> Any:
    current = value
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
