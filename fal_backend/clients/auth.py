from __future__ import annotations

import logging
from typing import Generator

import httpx

from fal_backend.config import Settings

log = logging.getLogger(__name__)


class KeyAuth(httpx.Auth):
    """fal style ``Authorization: Key <id>:<secret>``."""

    def __init__(self, key_id: str, key_secret: str) -> None:
        self.header = f"Key {key_id}:{key_secret}"

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = self.header
        yield request


class BearerAuth(httpx.Auth):
    def __init__(self, token: str) -> None:
        self.header = f"Bearer {token}"

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = self.header
        yield request


def build_auth(settings: Settings) -> httpx.Auth | None:
    if not settings.credentials_present():
        return None
    scheme = settings.auth_scheme.lower()
    if scheme == "bearer":
        return BearerAuth(settings.api_token)
    if scheme == "basic":
        return httpx.BasicAuth(settings.key_id, settings.key_secret)
    if scheme != "key":
        log.warning("unknown auth scheme, using key auth", extra={"auth_scheme": settings.auth_scheme})
    return KeyAuth(settings.key_id, settings.key_secret)
