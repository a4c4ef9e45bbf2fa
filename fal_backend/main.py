from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime, timezone
from typing import Any, Optional

import uvicorn
from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from fal_backend.clients.auth import build_auth
from fal_backend.clients.fal import FalClient
from fal_backend.config import Settings, get_settings
from fal_backend.errors import (
    ApiError,
    DownloadError,
    EncoderExitError,
    EncoderLaunchError,
    EncoderTimeoutError,
    FeatureDisabledError,
    MergeError,
    UpstreamRequestError,
    UpstreamTimeout,
)
from fal_backend.models.api import (
    ErrorResponse,
    GenerationResponse,
    HealthResponse,
    MediaResponse,
    MergeRequest,
    MirrorRequest,
    VoiceListResponse,
    failed_details,
)
from fal_backend.models.domain import FailedOutcome
from fal_backend.services.generation import GenerationService
from fal_backend.services.media import MediaService
from fal_backend.storage.media_store import LocalMediaStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

log = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation


def get_media_service(request: Request) -> MediaService:
    return request.app.state.media


def require_credentials(settings: Settings = Depends(get_app_settings)) -> None:
    if not settings.credentials_present():
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "missing_credentials", "FAL credentials are not configured")


def _too_large(limit: int) -> ApiError:
    return ApiError(
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        "payload_too_large",
        f"request body exceeds {limit} bytes",
        {"limit_bytes": limit},
    )


async def limit_body_size(request: Request, settings: Settings = Depends(get_app_settings)) -> None:
    # Chunked bodies carry no Content-Length, so the middleware cannot see them.
    if len(await request.body()) > settings.max_body_bytes:
        raise _too_large(settings.max_body_bytes)


router = APIRouter(dependencies=[Depends(limit_body_size)])


def _error_response(status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    payload = ErrorResponse(error=message, code=code, details=details)
    return JSONResponse(status_code=status_code, content=payload.model_dump(mode="json", exclude_none=True))


@router.get("/health", response_model=HealthResponse)
def health(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    key_present = settings.credentials_present()
    return HealthResponse(
        ok=key_present and bool(settings.upstream_fast) and bool(settings.upstream_quality),
        ts=datetime.now(timezone.utc),
        fal_key_present=key_present,
        fast_configured=bool(settings.upstream_fast),
        quality_configured=bool(settings.upstream_quality),
        merge_enabled=settings.merge_enabled,
        encoder_found=shutil.which(settings.ffmpeg_binary) is not None,
    )


async def _generate(tier: str, payload: Optional[dict[str, Any]], service: GenerationService) -> GenerationResponse:
    endpoint, _ = service.tier_target(tier)
    if not endpoint:
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "upstream_not_configured", "Upstream URL missing")
    outcome = await service.generate(tier, payload)
    if isinstance(outcome, FailedOutcome):
        raise ApiError(status.HTTP_502_BAD_GATEWAY, "upstream_error", outcome.error, failed_details(outcome))
    return GenerationResponse.from_outcome(outcome)


@router.post("/generate-fast", response_model=GenerationResponse, dependencies=[Depends(require_credentials)])
async def generate_fast(
    payload: Optional[dict[str, Any]] = Body(default=None),
    service: GenerationService = Depends(get_generation_service),
) -> GenerationResponse:
    return await _generate("fast", payload, service)


@router.post("/generate-quality", response_model=GenerationResponse, dependencies=[Depends(require_credentials)])
async def generate_quality(
    payload: Optional[dict[str, Any]] = Body(default=None),
    service: GenerationService = Depends(get_generation_service),
) -> GenerationResponse:
    return await _generate("quality", payload, service)


@router.get("/result/{job_id}", response_model=GenerationResponse, dependencies=[Depends(require_credentials)])
async def get_result(
    job_id: str,
    tier: str = Query(default="fast"),
    service: GenerationService = Depends(get_generation_service),
) -> GenerationResponse:
    if not service.results_base(tier):
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "upstream_not_configured", "Result endpoint missing")
    outcome = await service.fetch_result(tier, job_id)
    if isinstance(outcome, FailedOutcome):
        raise ApiError(status.HTTP_502_BAD_GATEWAY, "upstream_error", outcome.error, failed_details(outcome))
    return GenerationResponse.from_outcome(outcome)


@router.get("/voices", response_model=VoiceListResponse)
async def list_voices(service: GenerationService = Depends(get_generation_service)) -> VoiceListResponse:
    return VoiceListResponse(items=await service.list_voices())


@router.post("/merge", response_model=MediaResponse)
async def merge_media(payload: MergeRequest, service: MediaService = Depends(get_media_service)) -> MediaResponse:
    media = await service.merge(payload.video_url, payload.audio_url)
    return MediaResponse.from_published(media)


@router.post("/mirror", response_model=MediaResponse)
async def mirror_media(payload: MirrorRequest, service: MediaService = Depends(get_media_service)) -> MediaResponse:
    media = await service.mirror(payload.url)
    return MediaResponse.from_published(media)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def handle_api_error(_: Request, exc: ApiError) -> JSONResponse:
        return _error_response(exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
            for err in exc.errors()
        ]
        return _error_response(status.HTTP_400_BAD_REQUEST, "invalid_request", "Invalid request payload", {"errors": errors})

    @app.exception_handler(UpstreamTimeout)
    async def handle_upstream_timeout(_: Request, exc: UpstreamTimeout) -> JSONResponse:
        return _error_response(status.HTTP_502_BAD_GATEWAY, "upstream_timeout", "Upstream timeout", {"timeout": exc.timeout})

    @app.exception_handler(UpstreamRequestError)
    async def handle_upstream_request_error(_: Request, exc: UpstreamRequestError) -> JSONResponse:
        return _error_response(status.HTTP_502_BAD_GATEWAY, "upstream_unreachable", exc.reason)

    @app.exception_handler(FeatureDisabledError)
    async def handle_disabled(_: Request, exc: FeatureDisabledError) -> JSONResponse:
        return _error_response(status.HTTP_403_FORBIDDEN, "feature_disabled", str(exc), {"feature": exc.feature})

    @app.exception_handler(MergeError)
    async def handle_merge_error(_: Request, exc: MergeError) -> JSONResponse:
        details: dict[str, Any] = {}
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        if isinstance(exc, DownloadError):
            status_code = status.HTTP_502_BAD_GATEWAY
            details = {"role": exc.role, "url": exc.url, "upstream_status": exc.status_code}
        elif isinstance(exc, EncoderExitError):
            details = {"returncode": exc.returncode, "stderr": exc.stderr}
        elif isinstance(exc, EncoderLaunchError):
            details = {"binary": exc.binary}
        elif isinstance(exc, EncoderTimeoutError):
            status_code = status.HTTP_504_GATEWAY_TIMEOUT
            details = {"timeout": exc.timeout}
        return _error_response(status_code, exc.code, str(exc), details or None)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        log.error("unhandled error", extra={"path": request.url.path}, exc_info=exc)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "Internal server error")


def create_app(
    settings: Settings | None = None,
    client: FalClient | None = None,
    sleep=asyncio.sleep,
) -> FastAPI:
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(title=settings.app_name)

    @app.middleware("http")
    async def reject_oversized_body(request: Request, call_next):
        length = request.headers.get("content-length", "")
        if length.isdigit() and int(length) > settings.max_body_bytes:
            exc = _too_large(settings.max_body_bytes)
            log.warning("request body too large", extra={"path": request.url.path, "content_length": int(length)})
            return _error_response(exc.status_code, exc.code, exc.message, exc.details)
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if client is None:
        client = FalClient(
            auth=build_auth(settings),
            submit_timeout=settings.submit_timeout,
            poll_timeout=settings.poll_timeout,
            download_timeout=settings.download_timeout,
        )
    store = LocalMediaStore(settings.media_root, settings.media_url_path, settings.scratch_dir)
    store.ensure_dirs()

    app.state.settings = settings
    app.state.generation = GenerationService(settings, client, sleep=sleep)
    app.state.media = MediaService(settings, client, store)

    _register_error_handlers(app)
    app.include_router(router)
    app.mount(settings.media_url_path, StaticFiles(directory=str(store.root)), name="media")
    log.info(
        "app configured",
        extra={
            "fast_configured": bool(settings.upstream_fast),
            "quality_configured": bool(settings.upstream_quality),
            "merge_enabled": settings.merge_enabled,
        },
    )
    return app


def run() -> None:
    settings = get_settings()
    uvicorn.run("fal_backend.main:create_app", factory=True, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
