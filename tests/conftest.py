"""Shared pytest fixtures for the commitboard test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from commitboard.config import AppSettings

if TYPE_CHECKING:
    from pathlib import Path

pytest_plugins = ("respx",)


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    """Provide application settings with deterministic defaults for tests."""
    return AppSettings.model_validate(
        {
            "github_api_base": "https://api.github.test",
            "github_token": "token",  # pragma: allowlist secret
            "organization": "acme",
            "reports_dir": tmp_path / "reports",
        },
    )
