"""Rate limit and identity lookups used for connectivity checks."""

from typing import TYPE_CHECKING

from commitboard.models import GitHubUser, RateLimit

if TYPE_CHECKING:
    from commitboard.github_client import GitHubClient


async def fetch_rate_limit(client: "GitHubClient") -> RateLimit:
    """Return the core request budget for the configured token."""
    payload = await client.get_json("/rate_limit")
    return RateLimit.model_validate(payload["resources"]["core"])


async def fetch_authenticated_user(client: "GitHubClient") -> GitHubUser:
    """Return the account that owns the configured token."""
    payload = await client.get_json("/user")
    return GitHubUser.model_validate(payload)
