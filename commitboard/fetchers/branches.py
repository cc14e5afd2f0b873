"""Branch fetchers for GitHub repositories."""

import logging
from typing import TYPE_CHECKING

from commitboard.github_client import AuthFailureError, GitHubAPIError, RateLimitedError
from commitboard.models import Branch

if TYPE_CHECKING:
    from commitboard.github_client import GitHubClient
    from commitboard.models import RepositoryRef

LOGGER = logging.getLogger(__name__)

_EMPTY_REPOSITORY_STATUS = 409


async def fetch_branches(client: "GitHubClient", repository: "RepositoryRef") -> list[str]:
    """Return branch names for a repository.

    Empty repositories, reported by GitHub with a conflict status, have no branches.
    """
    try:
        return [
            Branch.model_validate(payload).name
            async for payload in client.paginate("GET", f"/repos/{repository.full_name}/branches")
        ]
    except (AuthFailureError, RateLimitedError):
        raise
    except GitHubAPIError as exc:
        if exc.status_code == _EMPTY_REPOSITORY_STATUS:
            LOGGER.debug("Repository %s is empty", repository.full_name)
        else:
            LOGGER.warning("Failed to fetch branches for %s: %s", repository.full_name, exc)
        return []
