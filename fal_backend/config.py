from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    app_name: str = "fal-backend"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    cors_origin: str = "*"
    max_body_bytes: int = Field(default=4 * 1024 * 1024, ge=1)

    # Upstream credentials; "key" sends "Key <id>:<secret>", "basic" encodes id:secret,
    # "bearer" sends api_token.
    auth_scheme: str = "key"
    key_id: str = ""
    key_secret: str = ""
    api_token: str = ""

    # Generation tiers
    upstream_fast: str = ""
    upstream_quality: str = ""
    model_fast: str = ""
    model_quality: str = ""
    model_field: str = "model"
    result_base_url: str = ""

    submit_timeout: float = 120.0
    poll_timeout: float = 30.0
    poll_attempts: int = Field(default=5, ge=1)
    poll_first_delay: float = 3.0
    poll_delay: float = 5.0

    voices_url: str = ""
    voice_catalog: list[dict[str, str]] = Field(default_factory=list)

    # Merge / published media
    merge_enabled: bool = False
    mirror_enabled: bool = False
    ffmpeg_binary: str = "ffmpeg"
    audio_codec: str = "aac"
    merge_timeout: float = 300.0
    download_timeout: float = 120.0
    media_root: str = "public/media"
    media_url_path: str = "/media"
    scratch_dir: str | None = None

    @field_validator("upstream_fast", "upstream_quality", "result_base_url", "voices_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return (value or "").strip().rstrip("/")

    @field_validator("media_url_path")
    @classmethod
    def normalize_media_path(cls, value: str) -> str:
        return "/" + (value or "media").strip("/")

    def credentials_present(self) -> bool:
        if self.auth_scheme.lower() == "bearer":
            return bool(self.api_token)
        return bool(self.key_id and self.key_secret)

    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origin.split(",") if origin.strip()] or ["*"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
