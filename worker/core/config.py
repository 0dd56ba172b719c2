"""
Worker configuration loaded from environment variables.

Uses pydantic-settings for type-safe env var parsing with automatic
.env file loading. All secrets are injected via environment and never
hard-coded.

One Settings instance is built in worker.main and passed into every
component; nothing else reads the environment.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── Report Store ──────────────────────────────────────────────
    # Base URL of the reports API, e.g. https://api.example.com/api
    api_base: str = ""
    # Service credential sent as a bearer token (distinct from user JWTs)
    service_key: str = ""
    http_timeout_seconds: float = 30.0

    # ─── Object storage ────────────────────────────────────────────
    # Empty keyfile → Application Default Credentials
    gcs_keyfile: str = ""
    gcs_bucket_name: str = ""
    temp_dir: str = "./tmp"

    # ─── Inference providers ───────────────────────────────────────
    hf_api_key: str = ""
    hf_audit_model: str = "LLAVA-1.6-Mistral-7B"
    hf_frame_classifier_model: str = "prithivMLmods/deepfake-detector-model-v1"
    hf_report_model: str = "Salesforce/blip2-opt-2.7b"

    # Multimodal report synthesis backend
    report_provider: Literal["huggingface", "gemini"] = "huggingface"
    gemini_api_key: str = ""
    gemini_report_model: str = "gemini-2.5-flash"

    # When True, all inference calls return canned mock responses.
    ai_mock_mode: bool = False

    # ─── Sampling ──────────────────────────────────────────────────
    frames_per_second: float = Field(default=1.0, gt=0)
    max_frames: int = Field(default=8, ge=1)
    ffmpeg_bin: str = "ffmpeg"

    # ─── Retry ─────────────────────────────────────────────────────
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=500, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
    )

    def missing_required(self) -> list[str]:
        """Return the env var names that must be set before a run can start."""
        missing = []
        if not self.api_base:
            missing.append("API_BASE")
        if not self.service_key:
            missing.append("SERVICE_KEY")
        if not self.gcs_bucket_name:
            missing.append("GCS_BUCKET_NAME")
        if not self.ai_mock_mode:
            if not self.hf_api_key:
                missing.append("HF_API_KEY")
            if self.report_provider == "gemini" and not self.gemini_api_key:
                missing.append("GEMINI_API_KEY")
        return missing
