"""Commit fetchers for GitHub repositories."""

import logging
from typing import TYPE_CHECKING

from commitboard.github_client import AuthFailureError, GitHubAPIError, RateLimitedError
from commitboard.models import Commit, CommitStats

if TYPE_CHECKING:
    from datetime import datetime

    from commitboard.github_client import GitHubClient
    from commitboard.models import RepositoryRef

LOGGER = logging.getLogger(__name__)


async def fetch_commits(
    client: "GitHubClient",
    repository: "RepositoryRef",
    *,
    since: "datetime",
    until: "datetime",
    branch: str | None = None,
) -> list[Commit]:
    """Return commits reachable from ``branch`` (default branch when None) authored in the range.

    An absent or inaccessible branch yields an empty list.
    """
    params = {"since": since.isoformat(), "until": until.isoformat()}
    if branch:
        params["sha"] = branch
    try:
        return [
            Commit.model_validate(payload)
            async for payload in client.paginate("GET", f"/repos/{repository.full_name}/commits", params=params)
        ]
    except (AuthFailureError, RateLimitedError):
        raise
    except GitHubAPIError as exc:
        LOGGER.warning(
            "Failed to fetch commits for %s on %s: %s",
            repository.full_name,
            branch or "default branch",
            exc,
        )
        return []


async def fetch_commit_stats(client: "GitHubClient", repository: "RepositoryRef", sha: str) -> CommitStats:
    """Return additions and deletions for a commit, or zeros when it cannot be read."""
    try:
        payload = await client.get_json(f"/repos/{repository.full_name}/commits/{sha}")
    except (AuthFailureError, RateLimitedError):
        raise
    except GitHubAPIError as exc:
        LOGGER.warning("Failed to fetch stats for %s@%s: %s", repository.full_name, sha, exc)
        return CommitStats()
    return CommitStats.model_validate(payload.get("stats") or {})
