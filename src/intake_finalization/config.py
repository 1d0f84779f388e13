"""Runtime configuration for intake finalization service."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    service_name: str = "intake-finalization-service"
    service_version: str = "0.1.0"
    log_level: str = "INFO"
    metrics_enabled: bool = True

    archive_dir: Path = Path("/tmp/intake-finalization/archive")
    archive_max_entries: int = 50

    mail_worker_count: int = 2
    mail_timeout_seconds: float = 30.0
    mail_helo_name: str = "localhost"

    document_font_path: str = ""

    model_config = SettingsConfigDict(env_prefix="INTAKE_FINALIZATION_", extra="ignore")


def get_settings() -> Settings:
    """Return settings object."""

    return Settings()
