# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for restore defaults. Worker counts, retry counts and
cache backend are defaults only; every one can be overridden per run.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from envrestore.core.errors import EnvRestoreError, ErrorCode

# Native libraries commonly required to compile R packages from source.
DEFAULT_SYSTEM_PACKAGES = (
    "libmysqlclient-dev,libcurl4-openssl-dev,libssl-dev,make,zlib1g-dev,git,"
    "libicu-dev,libfreetype6-dev,libfribidi-dev,libharfbuzz-dev,libxml2-dev,"
    "libxt6,libfontconfig1-dev,libjpeg-dev,libpng-dev,libtiff-dev,pandoc,"
    "libgit2-dev"
)


class ConfigurationError(EnvRestoreError):
    """Raised when configuration is internally inconsistent."""

    code = ErrorCode.CONFIGURATION


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ENVRESTORE_",
        extra="ignore",
    )

    # === Target ===
    default_arch: str = "arm64"
    library_path: Path = Path("/usr/local/lib/R/site-library")

    # === Restore ===
    jobs: int = 4

    # === Cache ===
    cache_enabled: bool = True
    cache_backend: Literal["json", "sqlite"] = "json"
    cache_root: Path = Path("~/.envrestore/cache")

    # === Build collaborator ===
    r_executable: str = "R"
    rscript_executable: str = "Rscript"
    build_timeout_s: float = 1800.0
    build_max_attempts: int = 3
    build_retry_delay_s: float = 2.0
    build_backoff_factor: float = 2.0

    # === R runtime options (Rprofile.site) ===
    cran_url: str = "https://cran.rstudio.com/"
    download_method: str = "libcurl"
    pak_enabled: bool = True
    ncpus: int | None = None

    # === System dependencies ===
    system_packages: str = DEFAULT_SYSTEM_PACKAGES

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("jobs", "build_max_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.build_retry_delay_s < 0:
            errors.append("BUILD_RETRY_DELAY_S must be >= 0")

        if self.build_backoff_factor < 1.0:
            errors.append("BUILD_BACKOFF_FACTOR must be >= 1.0")

        if self.build_timeout_s <= 0:
            errors.append("BUILD_TIMEOUT_S must be > 0")

        if self.ncpus is not None and self.ncpus < 1:
            errors.append("NCPUS must be >= 1 when set")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def system_packages_list(self) -> list[str]:
        """Parse comma-separated system package list."""
        return [p.strip() for p in self.system_packages.split(",") if p.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
