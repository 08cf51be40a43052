from __future__ import annotations

import pytest
from pydantic import ValidationError

from onenada.config import AppSettings, PoolSettings, SupabaseSettings


def test_defaults_match_membership_rules(monkeypatch):
    monkeypatch.delenv("ONENADA_RESERVATION__HOLD_SECONDS", raising=False)
    settings = AppSettings(_env_file=None)

    assert settings.pool.min_number == 1
    assert settings.pool.max_number == 10_000
    assert settings.pool.max_input_digits == 5
    assert settings.reservation.hold_seconds == 30
    assert settings.reservation.tick_seconds == 1.0
    assert settings.reservation.debounce_seconds == 0.5
    assert settings.entitlements.entitlement_id == "plus"


def test_nested_environment_overrides(monkeypatch):
    monkeypatch.setenv("ONENADA_RESERVATION__HOLD_SECONDS", "45")
    monkeypatch.setenv("ONENADA_SUPABASE__ANON_KEY", "anon-key")
    monkeypatch.setenv("ONENADA_ENVIRONMENT", "prod")

    settings = AppSettings(_env_file=None)

    assert settings.reservation.hold_seconds == 45
    assert settings.supabase.anon_key.get_secret_value() == "anon-key"
    assert settings.environment == "prod"


def test_pool_bounds_are_validated():
    with pytest.raises(ValidationError):
        PoolSettings(min_number=10, max_number=5)


def test_rest_and_auth_urls():
    supabase = SupabaseSettings(url="https://project.example.co")

    assert supabase.rest_url("profiles") == "https://project.example.co/rest/v1/profiles"
    assert supabase.auth_url("/user") == "https://project.example.co/auth/v1/user"
