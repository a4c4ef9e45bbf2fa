from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

from fal_backend.clients.fal import FalClient
from fal_backend.config import Settings
from fal_backend.errors import ApiError, UpstreamError
from fal_backend.models.domain import FailedOutcome, PendingOutcome, ReadyOutcome, ResultOutcome
from fal_backend.services.extractor import find_job_id, find_media_url, looks_in_progress

TIERS = ("fast", "quality")

Sleep = Callable[[float], Awaitable[Any]]


class GenerationService:
    def __init__(
        self,
        settings: Settings,
        client: FalClient,
        sleep: Sleep = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.sleep = sleep
        self.log = logger or logging.getLogger(__name__)

    def tier_target(self, tier: str) -> tuple[str, str]:
        if tier not in TIERS:
            raise ApiError(400, "unknown_tier", f"unknown tier {tier!r}")
        if tier == "quality":
            return self.settings.upstream_quality, self.settings.model_quality
        return self.settings.upstream_fast, self.settings.model_fast

    def results_base(self, tier: str) -> str:
        if self.settings.result_base_url:
            return self.settings.result_base_url
        endpoint, _ = self.tier_target(tier)
        return f"{endpoint}/requests" if endpoint else ""

    async def generate(self, tier: str, payload: dict[str, Any] | None) -> ResultOutcome:
        """Submit to ``tier`` and, when the upstream hands back a job id, poll for the result."""
        endpoint, model = self.tier_target(tier)
        outcome = await self.submit(payload, endpoint, model)
        if isinstance(outcome, PendingOutcome) and outcome.job_id:
            return await self.poll(outcome.job_id, self.results_base(tier), payload=outcome.payload)
        return outcome

    async def submit(self, payload: dict[str, Any] | None, endpoint: str, model: str | None) -> ResultOutcome:
        body = dict(payload or {})
        if model:
            body[self.settings.model_field] = model
        response = await self.client.post_json(endpoint, body)
        if not response.ok:
            message = response.error_message()
            self.log.warning(
                "upstream rejected submission",
                extra={"endpoint": endpoint, "status": response.status_code},
            )
            return FailedOutcome(status_code=response.status_code, error=message, payload=response.data)

        url = find_media_url(response.data)
        if url:
            self.log.info("submission completed synchronously", extra={"endpoint": endpoint})
            return ReadyOutcome(url=url, payload=response.data)
        job_id = find_job_id(response.data)
        if not job_id:
            self.log.warning("submission accepted without a job id", extra={"endpoint": endpoint})
        return PendingOutcome(job_id=job_id, payload=response.data)

    async def poll(self, job_id: str, results_base: str, payload: Any = None) -> ResultOutcome:
        url = self.result_url(results_base, job_id)
        last_payload = payload
        for attempt in range(1, self.settings.poll_attempts + 1):
            delay = self.settings.poll_first_delay if attempt == 1 else self.settings.poll_delay
            await self.sleep(delay)
            try:
                response = await self.client.get_json(url)
            except UpstreamError as exc:
                self.log.warning(
                    "poll attempt failed",
                    extra={"job_id": job_id, "attempt": attempt, "error": str(exc)},
                )
                continue
            if not response.ok:
                self.log.warning(
                    "poll attempt returned error status",
                    extra={"job_id": job_id, "attempt": attempt, "status": response.status_code},
                )
                continue

            last_payload = response.data
            media_url = find_media_url(response.data)
            if media_url:
                self.log.info("job ready", extra={"job_id": job_id, "attempt": attempt})
                return ReadyOutcome(url=media_url, payload=response.data)
            if not looks_in_progress(response.text):
                self.log.info("job state unclear, still waiting", extra={"job_id": job_id, "attempt": attempt})

        self.log.info("job still pending after polling", extra={"job_id": job_id, "attempts": self.settings.poll_attempts})
        return PendingOutcome(job_id=job_id, payload=last_payload)

    async def fetch_result(self, tier: str, job_id: str) -> ResultOutcome:
        """One-shot status check for clients re-polling with a job id."""
        response = await self.client.get_json(self.result_url(self.results_base(tier), job_id))
        if not response.ok:
            return FailedOutcome(status_code=response.status_code, error=response.error_message(), payload=response.data)
        media_url = find_media_url(response.data)
        if media_url:
            return ReadyOutcome(url=media_url, payload=response.data)
        return PendingOutcome(job_id=job_id, payload=response.data)

    async def list_voices(self) -> list[dict[str, Any]]:
        entries: list[Any] = list(self.settings.voice_catalog)
        if self.settings.voices_url:
            response = await self.client.get_json(self.settings.voices_url)
            if not response.ok:
                raise ApiError(
                    502,
                    "upstream_error",
                    response.error_message(),
                    {"upstream_status": response.status_code},
                )
            data = response.data
            if isinstance(data, dict):
                data = data.get("voices") or data.get("items") or data.get("data") or []
            entries = data if isinstance(data, list) else []

        voices: list[dict[str, Any]] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            voice_id = entry.get("voice_id") or entry.get("id")
            if not voice_id:
                continue
            voices.append(
                {
                    "voice_id": str(voice_id),
                    "name": entry.get("name"),
                    "description": entry.get("description"),
                    "preview_url": entry.get("preview_url") or entry.get("url"),
                }
            )
        return voices

    @staticmethod
    def result_url(results_base: str, job_id: str) -> str:
        return f"{results_base.rstrip('/')}/{quote(job_id, safe='')}"
