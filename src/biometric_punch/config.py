"""Application configuration."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from biometric_punch.domain.capture import CaptureConstraints

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    face_matcher_url: str
    face_matcher_api_key: str | None = None
    biometric_bucket: str = "biometric-photos"
    camera_index: int = 0
    camera_width: int = 640
    camera_height: int = 480
    camera_facing_mode: str | None = "user"
    camera_mirror: bool = True
    camera_ready_timeout_seconds: float = 3.0
    jpeg_quality: int = Field(default=85, ge=80, le=90)
    face_detection_enabled: bool = True
    min_face_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    countdown_ticks: int = Field(default=3, ge=0)
    countdown_tick_seconds: float = 1.0
    # No defaults: the deployment must choose its own lockout policy.
    max_verification_attempts: int = Field(ge=1)
    lockout_seconds: int = Field(ge=0)
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    def capture_constraints(self) -> CaptureConstraints:
        """Return the ideal camera constraints."""
        return CaptureConstraints(
            width=self.camera_width,
            height=self.camera_height,
            facing_mode=self.camera_facing_mode,
        )
