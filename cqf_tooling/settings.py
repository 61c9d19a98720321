"""
Settings for the cqf-tooling command line.

- Defaults are intended for local use from a content repository root.
- Tests patch the module-level ``settings`` instance with monkeypatch.
- Environment variables prefixed with CQF_ override fields.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """cqf-tooling configuration."""

    # ConvertR5toR4
    convert_output_path: str = Field(
        default="output/convert",
        description="Default output directory for converted bundles",
    )
    pretty_print: bool = Field(
        default=True,
        description="Pretty print serialized resources",
    )

    # Remote FHIR server (terminology lookups while packaging)
    fhir_server_timeout: float = Field(
        default=30.0,
        description="Timeout for FHIR server requests in seconds",
    )

    log_level: str = Field(default="INFO", description="Root log level")

    model_config = SettingsConfigDict(
        env_prefix="CQF_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
