"""Tests for environment-driven settings."""
from __future__ import annotations

import pytest

from learnhub.core.config import Settings


@pytest.mark.parametrize(
    "raw",
    [
        "http://a.test,http://b.test",
        " http://a.test , http://b.test ,",
        '["http://a.test", "http://b.test"]',
    ],
)
def test_cors_origins_from_env(monkeypatch, raw):
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", raw)

    settings = Settings(_env_file=None)

    assert settings.cors_allow_origins == ["http://a.test", "http://b.test"]


def test_cors_origins_default_to_local_frontends(monkeypatch):
    monkeypatch.delenv("CORS_ALLOW_ORIGINS", raising=False)

    settings = Settings(_env_file=None)

    assert settings.cors_allow_origins == ["http://localhost:8080", "http://localhost:5173"]
