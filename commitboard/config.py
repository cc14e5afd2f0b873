"""Configuration management for the commitboard application."""

from pathlib import Path
from typing import Annotated, Any, cast

from pydantic import AnyHttpUrl, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from commitboard.aggregate.models import Period


class ConfigMissingError(ValueError):
    """Raised when a credential or required setting is absent at startup."""


class AppSettings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_prefix="COMMITBOARD_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    github_api_base: AnyHttpUrl = Field(
        default=cast("AnyHttpUrl", "https://api.github.com"),
        description="Base URL for the GitHub REST API.",
    )
    github_token: SecretStr = Field(
        default=SecretStr(""),
        description="Personal access token used to authenticate GitHub API calls.",
    )
    organization: str = Field(
        default="",
        description="Organization whose repositories are tracked. Empty means every accessible repository.",
    )
    repositories: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Explicit repository list. Empty enables auto-discovery.",
    )
    default_repository: str = Field(
        default="",
        description="Repository used for single-repository reports when none is given.",
    )
    default_period: Period = Field(default=Period.DAILY, description="Period reported when none is given.")
    leaderboard_size: int = Field(default=10, ge=1, description="Number of entries in leaderboard slices.")
    export_json: bool = Field(default=True, description="Export reports to JSON files from the CLI.")
    per_page: int = Field(
        default=100,
        ge=20,
        le=100,
        description="Number of items to request per GitHub API page.",
    )
    max_concurrency: int = Field(
        default=5,
        ge=1,
        le=32,
        description="Maximum number of concurrent commit statistic requests.",
    )
    repository_concurrency: int = Field(
        default=5,
        ge=1,
        le=32,
        description="Maximum number of repositories aggregated concurrently.",
    )
    request_timeout: float = Field(default=30.0, gt=0, description="Timeout in seconds for a single API call.")
    repository_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Time budget in seconds for aggregating a single repository.",
    )
    reports_dir: Path = Field(
        default=Path("reports"),
        description="Directory used to persist report snapshots.",
    )
    memory_cache_ttl: float = Field(default=300.0, gt=0, description="Memory cache lifetime in seconds.")
    file_cache_ttl: float = Field(default=3600.0, gt=0, description="Snapshot file lifetime in seconds.")
    timezone: str = Field(default="UTC", description="Timezone used to compute report window boundaries.")

    @field_validator("repositories", mode="before")
    @classmethod
    def _split_repositories(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @model_validator(mode="after")
    def _enforce_required_fields(self) -> "AppSettings":
        if not self.github_token.get_secret_value():
            msg = "COMMITBOARD_GITHUB_TOKEN must be configured"
            raise ValueError(msg)
        if not self.organization:
            bare = [name for name in [*self.repositories, self.default_repository] if name and "/" not in name]
            if bare:
                msg = (
                    "COMMITBOARD_ORGANIZATION must be configured for repositories without an owner: "
                    f"{', '.join(bare)}"
                )
                raise ValueError(msg)
        return self


def load_settings() -> AppSettings:
    """Load application settings from supported sources."""
    try:
        return AppSettings()
    except ValidationError as exc:
        details = "; ".join(str(error["msg"]).removeprefix("Value error, ") for error in exc.errors())
        raise ConfigMissingError(details) from exc
