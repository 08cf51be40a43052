"""Runtime configuration based on environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, HttpUrl, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseModel):
    url: HttpUrl = Field(
        default="http://localhost:54321",
        description="Base URL of the managed backend (REST lives under /rest/v1).",
    )
    anon_key: SecretStr | None = None
    request_timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    def rest_url(self, path: str) -> str:
        return f"{str(self.url).rstrip('/')}/rest/v1/{path.lstrip('/')}"

    def auth_url(self, path: str) -> str:
        return f"{str(self.url).rstrip('/')}/auth/v1/{path.lstrip('/')}"


class PoolSettings(BaseModel):
    min_number: int = Field(default=1, ge=1)
    max_number: int = Field(default=10_000, ge=1)
    max_input_digits: int = Field(default=5, ge=1, le=9)

    @model_validator(mode="after")
    def _check_bounds(self) -> "PoolSettings":
        if self.min_number > self.max_number:
            raise ValueError("pool.min_number must not exceed pool.max_number")
        return self


class ReservationSettings(BaseModel):
    hold_seconds: int = Field(default=30, ge=1, le=3600)
    tick_seconds: float = Field(default=1.0, gt=0)
    debounce_seconds: float = Field(default=0.5, ge=0)


class EntitlementSettings(BaseModel):
    entitlement_id: str = Field(default="plus", min_length=1)
    provisioning_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(default=0.5, ge=0)

    @field_validator("entitlement_id", mode="before")
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class ProfileSettings(BaseModel):
    missing_profile_retry_delay: float = Field(default=1.0, ge=0)


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ONENADA_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__"
    )

    environment: Literal["dev", "staging", "prod"] = "dev"
    default_language: str = "en"

    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    pool: PoolSettings = Field(default_factory=PoolSettings)
    reservation: ReservationSettings = Field(default_factory=ReservationSettings)
    entitlements: EntitlementSettings = Field(default_factory=EntitlementSettings)
    profile: ProfileSettings = Field(default_factory=ProfileSettings)


@lru_cache
def get_settings() -> AppSettings:
    """Return cached settings instance."""

    return AppSettings()


__all__ = [
    "AppSettings",
    "EntitlementSettings",
    "PoolSettings",
    "ProfileSettings",
    "ReservationSettings",
    "SupabaseSettings",
    "get_settings",
]
