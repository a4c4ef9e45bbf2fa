from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

ERROR_FIELDS = ("error", "message", "detail")


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    data: Any
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def error_message(self) -> str:
        if isinstance(self.data, dict):
            for field in ERROR_FIELDS:
                value = self.data.get(field)
                if value in (None, ""):
                    continue
                if isinstance(value, str):
                    return value
                return json.dumps(value, ensure_ascii=False)
        return self.text or f"HTTP {self.status_code}"


def normalize_response(status_code: int, text: str) -> UpstreamResponse:
    """Parse an upstream body, keeping the original text under ``raw`` when it is not JSON."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError, RecursionError):
        data = {"raw": text}
    return UpstreamResponse(status_code=status_code, data=data, text=text or "")
