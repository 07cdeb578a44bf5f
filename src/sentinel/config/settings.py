"""
Sentinel Application Settings

Configuration management using Pydantic Settings.
All values can be overridden from environment variables or a .env file.

SECURITY: Clinical data never leaves the device. No setting here
configures a remote endpoint.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class InferenceSettings(BaseSettings):
    """
    Local inference timeouts and generation limits.

    Timeouts are a per-task table (seconds), never a single global value.
    """

    model_config = SettingsConfigDict(env_prefix="SENTINEL_INFERENCE_")

    risk_assessment_timeout: float = Field(default=60.0, gt=0, description="Streaming risk triage budget")
    compression_timeout: float = Field(default=30.0, gt=0, description="Narrative compression budget")
    rerank_timeout: float = Field(default=15.0, gt=0, description="Safety plan reranking budget")
    report_first_token_timeout: float = Field(default=10.0, gt=0, description="Time allowed until the first report token")
    context_ingestion_timeout: float = Field(default=60.0, gt=0, description="Clinical document ingestion budget")
    explain_risk_timeout: float = Field(default=30.0, gt=0, description="Risk explanation budget")

    max_tokens: int = Field(default=256, ge=16, le=4096)
    report_max_chars: int = Field(default=3000, ge=200, le=20000)
    narrative_max_chars: int = Field(default=2000, ge=200, le=20000)
    triage_stop_lines: int = Field(default=2, ge=1, le=10)

    def timeout_table(self) -> dict[str, float]:
        """Timeout budget keyed by task name."""
        return {
            "risk_assessment": self.risk_assessment_timeout,
            "compression": self.compression_timeout,
            "rerank_safety_plan": self.rerank_timeout,
            "report": self.report_first_token_timeout,
            "context_ingestion": self.context_ingestion_timeout,
            "explain_risk": self.explain_risk_timeout,
        }


class ModelSettings(BaseSettings):
    """On-device language model configuration."""

    model_config = SettingsConfigDict(env_prefix="SENTINEL_MODEL_")

    weights_path: str = Field(default="models/medgemma-4b-it", description="Local model directory")
    device: Optional[str] = Field(default=None, description="cuda/cpu; auto-detected when unset")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    top_k: int = Field(default=40, ge=1, le=200)
    top_p: float = Field(default=0.95, ge=0.0, le=1.0)
    repetition_penalty: float = Field(default=1.15, ge=1.0, le=2.0)
    context_window: int = Field(default=1024, ge=256, le=32768, description="Prompt plus output token budget")


class LongitudinalSettings(BaseSettings):
    """Longitudinal clinical state compression configuration."""

    model_config = SettingsConfigDict(env_prefix="SENTINEL_LONGITUDINAL_")

    stale_after_days: int = Field(default=30, ge=1, le=365, description="Inactivity window before state reset")
    vigilance_crisis_count: int = Field(default=2, ge=1)
    vigilance_days_since_crisis: int = Field(default=7, ge=0)


class CrisisSettings(BaseSettings):
    """Crisis lifecycle configuration."""

    model_config = SettingsConfigDict(env_prefix="SENTINEL_CRISIS_")

    recheck_countdown_seconds: int = Field(default=600, ge=1, description="Active/Stabilizing to Recheck countdown")
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    mandatory_checkin_hours: int = Field(default=4, ge=1, le=48)
    history_retention_days: int = Field(default=30, ge=1, le=365)


class StorageSettings(BaseSettings):
    """On-device persistence configuration."""

    model_config = SettingsConfigDict(env_prefix="SENTINEL_STORAGE_")

    data_dir: Path = Field(default=Path(".sentinel"), description="Directory holding persisted documents")
    prompt_templates_path: Optional[Path] = Field(default=None, description="Versioned prompt template file")
    processed_documents_dir: str = Field(default="Processed_Clinical_Docs")


class Settings(BaseSettings):
    """
    Main application settings.

    All configuration is loaded from environment variables with SENTINEL_ prefix.

    Usage:
        settings = get_settings()
        budget = settings.inference.timeout_table()["compression"]
    """

    model_config = SettingsConfigDict(
        env_prefix="SENTINEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    debug: bool = Field(default=False, description="Debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )
    health_fetch_timeout: float = Field(default=5.0, gt=0, description="Biometric fetch budget (seconds)")
    patient_name: str = Field(default="Veteran", description="Preferred name used in reports")

    # Nested settings
    inference: InferenceSettings = Field(default_factory=InferenceSettings)
    model: ModelSettings = Field(default_factory=ModelSettings)
    longitudinal: LongitudinalSettings = Field(default_factory=LongitudinalSettings)
    crisis: CrisisSettings = Field(default_factory=CrisisSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment."""
        return v.upper() if isinstance(v, str) else v


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.
    For testing, construct Settings directly and inject it.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
