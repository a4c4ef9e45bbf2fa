"""Exception types raised by clients and services, plus the API error shape."""

from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Error that maps directly onto a JSON error response."""

    def __init__(self, status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class UpstreamError(Exception):
    """Base for failures talking to the generation service."""


class UpstreamTimeout(UpstreamError):
    def __init__(self, url: str, timeout: float) -> None:
        self.url = url
        self.timeout = timeout
        super().__init__("Upstream timeout")


class UpstreamRequestError(UpstreamError):
    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(reason)


class FeatureDisabledError(Exception):
    def __init__(self, feature: str) -> None:
        self.feature = feature
        super().__init__(f"{feature} is disabled")


class MergeError(Exception):
    """Base for merge pipeline failures. Temp inputs are gone by the time one propagates."""

    code = "merge_failed"


class DownloadError(MergeError):
    code = "download_failed"

    def __init__(self, role: str, url: str, status_code: int | None = None, reason: str | None = None) -> None:
        self.role = role
        self.url = url
        self.status_code = status_code
        self.reason = reason
        if status_code is not None:
            message = f"{role} download failed with HTTP {status_code}"
        else:
            message = f"{role} download failed: {reason or 'network error'}"
        super().__init__(message)


class EncoderLaunchError(MergeError):
    code = "encoder_launch_failed"

    def __init__(self, binary: str, reason: str) -> None:
        self.binary = binary
        self.reason = reason
        super().__init__(f"could not start encoder {binary!r}: {reason}")


class EncoderExitError(MergeError):
    code = "encoder_failed"

    def __init__(self, returncode: int, stderr: str = "") -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"encoder exited with status {returncode}")


class EncoderTimeoutError(MergeError):
    code = "encoder_timeout"

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"encoder did not finish within {timeout:g}s")
