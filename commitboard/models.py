"""Pydantic models describing GitHub entities used by the collector."""

from datetime import datetime

from pydantic import BaseModel, Field


UNKNOWN_AUTHOR_NAME = "Unknown"
UNKNOWN_AUTHOR_EMAIL = "unknown@email.com"


class GitHubUser(BaseModel):
    """Subset of GitHub account metadata attached to commits and repositories."""

    login: str
    id: int | None = None


class Repository(BaseModel):
    """Repository metadata returned from the organization and user listings."""

    name: str
    full_name: str
    owner: GitHubUser
    default_branch: str | None = None
    archived: bool = False


class RepositoryRef(BaseModel):
    """A repository in scope for aggregation, addressed by owner and name."""

    owner: str
    name: str
    default_branch: str | None = None

    @property
    def full_name(self) -> str:
        """Return the ``owner/name`` path used in API URLs."""
        return f"{self.owner}/{self.name}"

    def key(self, organization: str) -> str:
        """Return the identifier used in reports for this repository."""
        if organization and self.owner.casefold() == organization.casefold():
            return self.name
        return self.full_name

    @classmethod
    def parse(cls, value: str, *, default_owner: str) -> "RepositoryRef":
        """Build a reference from ``name`` or ``owner/name``."""
        owner, _, name = value.strip().rpartition("/")
        return cls(owner=owner or default_owner, name=name)

    @classmethod
    def from_repository(cls, repository: Repository) -> "RepositoryRef":
        """Build a reference from a listed repository."""
        return cls(
            owner=repository.owner.login,
            name=repository.name,
            default_branch=repository.default_branch,
        )


class Branch(BaseModel):
    """Branch entry returned from the branches listing."""

    name: str


class CommitAuthor(BaseModel):
    """Git-level author signature recorded in the commit object."""

    name: str | None = None
    email: str | None = None
    date: datetime | None = None


class CommitDetail(BaseModel):
    """The git commit object nested in a GitHub commit payload."""

    author: CommitAuthor | None = None
    message: str = ""


class CommitStats(BaseModel):
    """Line change totals for a single commit."""

    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    total: int = 0


class Commit(BaseModel):
    """Commit listing entry, optionally linked to a GitHub account."""

    sha: str
    commit: CommitDetail
    author: GitHubUser | None = None
    stats: CommitStats | None = None


class CommitRecord(BaseModel):
    """Transient, normalized view of a commit used while aggregating."""

    sha: str
    identity: str
    name: str
    email: str
    authored_at: datetime | None = None

    @classmethod
    def from_commit(cls, commit: Commit) -> "CommitRecord":
        """Resolve the author identity, preferring the platform handle over the display name.

        Authors without a platform account are keyed by display name, so two
        such authors sharing a name collapse into one identity.
        """
        signature = commit.commit.author or CommitAuthor()
        name = signature.name or UNKNOWN_AUTHOR_NAME
        email = signature.email or UNKNOWN_AUTHOR_EMAIL
        identity = commit.author.login if commit.author else name
        return cls(
            sha=commit.sha,
            identity=identity,
            name=name,
            email=email,
            authored_at=signature.date,
        )


class Contributor(BaseModel):
    """Contributor roster entry with its lifetime contribution count."""

    login: str
    contributions: int = 0


class RateLimit(BaseModel):
    """Core API budget returned by the rate limit endpoint."""

    limit: int
    remaining: int
    reset: datetime
    used: int = 0
