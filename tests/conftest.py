"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fal_backend.clients.auth import KeyAuth  # noqa: E402
from fal_backend.clients.fal import FalClient  # noqa: E402
from fal_backend.config import Settings  # noqa: E402

FAST_URL = "https://queue.test/fast-model"
QUALITY_URL = "https://queue.test/quality-model"


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    def factory(**overrides) -> Settings:
        values = {
            "key_id": "key-id",
            "key_secret": "key-secret",
            "upstream_fast": FAST_URL,
            "upstream_quality": QUALITY_URL,
            "model_fast": "fast",
            "model_quality": "quality",
            "media_root": str(tmp_path / "media"),
            "scratch_dir": str(tmp_path / "scratch"),
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return factory


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client() -> Callable[..., FalClient]:
    def factory(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> FalClient:
        return FalClient(
            auth=KeyAuth("key-id", "key-secret"),
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    return factory
