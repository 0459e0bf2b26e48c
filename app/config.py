from __future__ import annotations

import tempfile

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Wallet Pass Pipeline"
    app_version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"

    # Signing material
    pass_certificate_path: str | None = None
    pass_certificate_password: str = ""
    pass_wwdr_certificate_path: str | None = None

    # Bundle build
    pass_template_dir: str | None = None
    pass_work_root: str = tempfile.gettempdir()
    pass_signature_digest: str = "sha256"
    pass_archive_compression: str = "stored"
    pass_build_workers: int = 4
    pass_template_ignore: list[str] = [".DS_Store"]

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "pass_build"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    @property
    def signing_configured(self) -> bool:
        """Return True when both certificate paths are present."""
        return bool(self.pass_certificate_path and self.pass_wwdr_certificate_path)

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
