from __future__ import annotations

import logging
import os
import pathlib
import tempfile
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse
from uuid import uuid4


class LocalMediaStore:
    """Served media directory plus the scratch area used for in-flight downloads."""

    def __init__(
        self,
        root: str,
        url_path: str = "/media",
        scratch_dir: str | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.root = pathlib.Path(root)
        self.url_path = "/" + url_path.strip("/")
        self.scratch_dir = pathlib.Path(scratch_dir) if scratch_dir else pathlib.Path(tempfile.gettempdir())
        self.log = logger or logging.getLogger(__name__)

    def ensure_dirs(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.scratch_dir.mkdir(parents=True, exist_ok=True)

    def allocate_output(self, prefix: str, suffix: str) -> pathlib.Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        return self.root / f"{prefix}-{timestamp}-{uuid4().hex[:12]}{suffix}"

    def allocate_scratch(self, role: str, suffix: str) -> str:
        fd, path = tempfile.mkstemp(prefix=f"{role}-", suffix=suffix, dir=self.scratch_dir)
        os.close(fd)
        return path

    def public_path(self, path: str | pathlib.Path) -> str:
        return f"{self.url_path}/{pathlib.Path(path).name}"

    def discard(self, path: str | pathlib.Path | None) -> None:
        """Remove ``path`` if present. Failures are logged and never raised."""
        if not path:
            return
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError:
            self.log.warning("failed to remove file", extra={"path": str(path)}, exc_info=True)


def suffix_from_url(url: str, default: str) -> str:
    suffix = pathlib.PurePosixPath(urlparse(url).path).suffix.lower()
    if not suffix or len(suffix) > 6 or not suffix[1:].isalnum():
        return default
    return suffix
