from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

from fal_backend.clients.fal import FalClient
from fal_backend.config import Settings
from fal_backend.errors import (
    EncoderExitError,
    EncoderLaunchError,
    EncoderTimeoutError,
    FeatureDisabledError,
)
from fal_backend.models.domain import MediaAssetRef, PublishedMedia
from fal_backend.storage.media_store import LocalMediaStore, suffix_from_url

STDERR_TAIL = 2000


class MediaService:
    """Merges separately generated video and audio, and republishes remote media locally."""

    def __init__(
        self,
        settings: Settings,
        client: FalClient,
        store: LocalMediaStore,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.store = store
        self.log = logger or logging.getLogger(__name__)

    async def merge(self, video_url: str, audio_url: str) -> PublishedMedia:
        if not self.settings.merge_enabled:
            raise FeatureDisabledError("merge")
        self.store.ensure_dirs()
        video = MediaAssetRef(role="video", url=video_url)
        audio = MediaAssetRef(role="audio", url=audio_url)
        output_path = self.store.allocate_output("merged", ".mp4")
        inputs: list[str] = []
        published = False
        try:
            for asset in (video, audio):
                path = self.store.allocate_scratch(asset.role, suffix_from_url(asset.url, ".bin"))
                inputs.append(path)
                await self.client.download(asset.url, path, role=asset.role)
            await self._encode(inputs[0], inputs[1], str(output_path))
            published = True
        finally:
            for path in inputs:
                self.store.discard(path)
            if not published:
                self.store.discard(output_path)

        size = os.path.getsize(output_path) if output_path.exists() else None
        self.log.info("merge completed", extra={"output": output_path.name, "size": size})
        return PublishedMedia(filename=output_path.name, path=self.store.public_path(output_path), size=size)

    async def mirror(self, url: str) -> PublishedMedia:
        """Copy a generated asset into the served media root."""
        if not self.settings.mirror_enabled:
            raise FeatureDisabledError("mirror")
        self.store.ensure_dirs()
        output_path = self.store.allocate_output("media", suffix_from_url(url, ".mp4"))
        published = False
        try:
            size = await self.client.download(url, str(output_path), role="media")
            published = True
        finally:
            if not published:
                self.store.discard(output_path)
        return PublishedMedia(filename=output_path.name, path=self.store.public_path(output_path), size=size)

    def encoder_command(self, video_path: str, audio_path: str, output_path: str) -> list[str]:
        return [
            self.settings.ffmpeg_binary,
            "-y",
            "-i",
            video_path,
            "-i",
            audio_path,
            "-map",
            "0:v:0",
            "-map",
            "1:a:0",
            "-c:v",
            "copy",
            "-c:a",
            self.settings.audio_codec,
            "-shortest",
            output_path,
        ]

    async def _encode(self, video_path: str, audio_path: str, output_path: str) -> None:
        cmd = self.encoder_command(video_path, audio_path, output_path)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self.log.error("encoder launch failed", extra={"binary": cmd[0]}, exc_info=exc)
            raise EncoderLaunchError(cmd[0], exc.strerror or str(exc)) from exc

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.settings.merge_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            self.log.error("encoder timed out", extra={"timeout": self.settings.merge_timeout})
            raise EncoderTimeoutError(self.settings.merge_timeout)
        except asyncio.CancelledError:
            proc.kill()
            await asyncio.shield(proc.wait())
            raise

        if proc.returncode != 0:
            stderr_text = (stderr or b"").decode("utf-8", errors="replace")[-STDERR_TAIL:]
            self.log.error(
                "encoder exited with error",
                extra={"returncode": proc.returncode, "stderr": stderr_text},
            )
            raise EncoderExitError(proc.returncode, stderr_text)
