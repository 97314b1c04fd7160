"""
Application configuration via Pydantic Settings.
All values can be overridden by environment variables or a .env file.
"""
from __future__ import annotations

from typing import List

from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    DotEnvSettingsSource,
    EnvSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

LETSENCRYPT_STAGING_DIRECTORY = "https://acme-staging-v02.api.letsencrypt.org/directory"


class _CommaFallbackMixin:
    """Return the raw string when JSON parsing fails.

    pydantic-settings calls json.loads() on complex-typed fields (e.g.
    List[str]) before field_validators run.  A plain comma-separated value
    like ``www.example.com,api.example.com`` is not valid JSON, so the raw
    string is handed through to the ``parse_san`` validator instead.
    """

    def prepare_field_value(self, field_name, field, value, value_is_complex):  # type: ignore[override]
        try:
            return super().prepare_field_value(field_name, field, value, value_is_complex)  # type: ignore[misc]
        except ValueError:
            return value


class _CSVEnvSource(_CommaFallbackMixin, EnvSettingsSource):
    pass


class _CSVDotEnvSource(_CommaFallbackMixin, DotEnvSettingsSource):
    pass


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Account / authority ────────────────────────────────────────────────
    EMAIL: str = "notmy@mail.com"
    CA_DIR_URL: str = LETSENCRYPT_STAGING_DIRECTORY

    # ── Domains ────────────────────────────────────────────────────────────
    # DOMAIN is required, but checked when a run starts so that importing
    # this module never fails.
    DOMAIN: str = ""
    SAN: List[str] = []

    # ── Certificate files ──────────────────────────────────────────────────
    CERT_PATH: str = "/etc/ssl/private/fullchain.pem"
    KEY_PATH: str = "/etc/ssl/private/key.pem"
    EXPIRY_DAYS_THRESHOLD: int = 30

    # ── HTTP-01 challenge ──────────────────────────────────────────────────
    CHALLENGE_BASE_PATH: str = "/usr/share/nginx/challenge/.well-known/acme-challenge"

    # ── Activation ─────────────────────────────────────────────────────────
    RELOAD_COMMAND: str = "nginx -s reload"   # empty string disables reload

    # ── Scheduling ─────────────────────────────────────────────────────────
    SCHEDULE_TIME: str = "06:00"

    # ── ACME TLS (for testing against Pebble / self-signed CAs) ───────────
    ACME_CA_BUNDLE: str = ""       # Path to CA cert bundle; empty = system default
    ACME_INSECURE: bool = False    # Skip TLS verification (never use in production)
    ACME_TIMEOUT: int = 30         # Per-request socket timeout, seconds

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            _CSVEnvSource(settings_cls),
            _CSVDotEnvSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("SAN", mode="before")
    @classmethod
    def parse_san(cls, v: object) -> List[str]:
        """Accept comma-separated string or list.  Order and duplicates are kept."""
        if isinstance(v, str):
            return [d.strip() for d in v.split(",") if d.strip()]
        return v  # type: ignore[return-value]

    @field_validator("DOMAIN")
    @classmethod
    def strip_domain(cls, v: str) -> str:
        return v.strip()

    @field_validator("EXPIRY_DAYS_THRESHOLD")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if v < 0:
            raise ValueError("EXPIRY_DAYS_THRESHOLD must be >= 0")
        return v


def full_domains(cfg: Settings) -> List[str]:
    """Primary domain followed by the alternate names, in configured order."""
    return [cfg.DOMAIN, *cfg.SAN]


# Module-level singleton: import and use everywhere.
settings = Settings()
