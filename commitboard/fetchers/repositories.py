"""Repository discovery for organizations and user accounts."""

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

from commitboard.github_client import NotFoundError
from commitboard.models import Repository

if TYPE_CHECKING:
    from commitboard.github_client import GitHubClient

LOGGER = logging.getLogger(__name__)


async def fetch_organization_repositories(client: "GitHubClient", organization: str) -> list[Repository]:
    """Return every repository listed under an organization."""
    encoded = quote(organization, safe="")
    params = {"type": "all", "sort": "updated", "direction": "desc"}
    return [
        Repository.model_validate(payload)
        async for payload in client.paginate("GET", f"/orgs/{encoded}/repos", params=params)
    ]


async def fetch_user_repositories(client: "GitHubClient", *, owner: str | None = None) -> list[Repository]:
    """Return repositories visible to the authenticated user, optionally filtered by owner.

    The owner comparison is case-insensitive.
    """
    params = {
        "affiliation": "owner,collaborator,organization_member",
        "sort": "updated",
        "direction": "desc",
    }
    repositories = [
        Repository.model_validate(payload)
        async for payload in client.paginate("GET", "/user/repos", params=params)
    ]
    if not owner:
        return repositories
    wanted = owner.casefold()
    return [repository for repository in repositories if repository.owner.login.casefold() == wanted]


async def fetch_repositories(client: "GitHubClient", organization: str | None) -> list[Repository]:
    """Discover repositories, trying the organization listing before the user listing.

    An empty result is a valid outcome, not an error.
    """
    if organization:
        try:
            repositories = await fetch_organization_repositories(client, organization)
        except NotFoundError as exc:
            LOGGER.warning(
                "Organization listing for %s not accessible, falling back to user repositories: %s",
                organization,
                exc,
            )
        else:
            if repositories:
                LOGGER.info("Found %s repositories in organization %s", len(repositories), organization)
                return repositories
            LOGGER.info("Organization %s listed no repositories, falling back to user repositories", organization)
    repositories = await fetch_user_repositories(client, owner=organization or None)
    if not repositories:
        LOGGER.warning("No repositories found%s", f" for {organization}" if organization else "")
    else:
        LOGGER.info("Found %s repositories via the user listing", len(repositories))
    return repositories
