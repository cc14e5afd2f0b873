"""Contributor roster fetchers for GitHub repositories."""

import logging
from typing import TYPE_CHECKING

from commitboard.github_client import AuthFailureError, GitHubAPIError, RateLimitedError
from commitboard.models import Contributor

if TYPE_CHECKING:
    from commitboard.github_client import GitHubClient
    from commitboard.models import RepositoryRef

LOGGER = logging.getLogger(__name__)


async def fetch_contributors(client: "GitHubClient", repository: "RepositoryRef") -> list[Contributor]:
    """Return the contributors of a repository, or an empty list on error."""
    try:
        return [
            Contributor.model_validate(payload)
            async for payload in client.paginate(
                "GET",
                f"/repos/{repository.full_name}/contributors",
                params={"anon": "false"},
            )
        ]
    except (AuthFailureError, RateLimitedError):
        raise
    except GitHubAPIError as exc:
        LOGGER.warning("Failed to fetch contributors for %s: %s", repository.full_name, exc)
        return []
