"""Tests for repository discovery."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from httpx import Response
from tenacity import wait_none

from commitboard.fetchers.repositories import fetch_repositories
from commitboard.github_client import AuthFailureError, GitHubClient
from tests.factories import repository_payload

if TYPE_CHECKING:
    from respx import MockRouter

    from commitboard.config import AppSettings

BASE = "https://api.github.test"


@pytest.mark.asyncio
@pytest.mark.respx(assert_all_called=False)
async def test_fetch_repositories_uses_organization_listing(
    settings: AppSettings,
    respx_mock: MockRouter,
) -> None:
    """Organization repositories should be returned without touching the user listing."""
    respx_mock.get(f"{BASE}/orgs/acme/repos").mock(
        return_value=Response(200, json=[repository_payload("api"), repository_payload("web")]),
    )
    user_route = respx_mock.get(f"{BASE}/user/repos")

    async with GitHubClient(settings) as client:
        repositories = await fetch_repositories(client, "acme")

    assert [repository.name for repository in repositories] == ["api", "web"]
    assert not user_route.called


@pytest.mark.asyncio
async def test_fetch_repositories_falls_back_to_user_listing(
    settings: AppSettings,
    respx_mock: MockRouter,
) -> None:
    """A not-found organization should fall back to user repositories filtered by owner."""
    respx_mock.get(f"{BASE}/orgs/Acme/repos").mock(return_value=Response(404, json={"message": "Not Found"}))
    respx_mock.get(f"{BASE}/user/repos").mock(
        return_value=Response(
            200,
            json=[
                repository_payload("api", owner="acme"),
                repository_payload("dotfiles", owner="alice"),
                repository_payload("web", owner="ACME"),
                repository_payload("fork", owner="other"),
                repository_payload("infra", owner="Acme"),
            ],
        ),
    )

    async with GitHubClient(settings, retry_wait=wait_none()) as client:
        repositories = await fetch_repositories(client, "Acme")

    assert [repository.name for repository in repositories] == ["api", "web", "infra"]


@pytest.mark.asyncio
async def test_fetch_repositories_without_organization_lists_everything(
    settings: AppSettings,
    respx_mock: MockRouter,
) -> None:
    """Account-wide scope should return every user repository."""
    respx_mock.get(f"{BASE}/user/repos").mock(
        return_value=Response(200, json=[repository_payload("api"), repository_payload("notes", owner="alice")]),
    )

    async with GitHubClient(settings) as client:
        repositories = await fetch_repositories(client, None)

    assert [repository.full_name for repository in repositories] == ["acme/api", "alice/notes"]


@pytest.mark.asyncio
async def test_fetch_repositories_returns_empty_when_nothing_accessible(
    settings: AppSettings,
    respx_mock: MockRouter,
) -> None:
    """Zero accessible repositories is a valid result."""
    respx_mock.get(f"{BASE}/orgs/acme/repos").mock(return_value=Response(200, json=[]))
    respx_mock.get(f"{BASE}/user/repos").mock(return_value=Response(200, json=[]))

    async with GitHubClient(settings) as client:
        repositories = await fetch_repositories(client, "acme")

    assert repositories == []


@pytest.mark.asyncio
@pytest.mark.respx(assert_all_called=False)
async def test_fetch_repositories_propagates_auth_failure(
    settings: AppSettings,
    respx_mock: MockRouter,
) -> None:
    """Bad credentials should not trigger the user-listing fallback."""
    respx_mock.get(f"{BASE}/orgs/acme/repos").mock(return_value=Response(401, json={"message": "Bad credentials"}))
    user_route = respx_mock.get(f"{BASE}/user/repos")

    async with GitHubClient(settings, retry_wait=wait_none()) as client:
        with pytest.raises(AuthFailureError):
            await fetch_repositories(client, "acme")

    assert not user_route.called
