"""Command-line entry point for the commitboard tool."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, NoReturn, TypeVar

import orjson
import typer

from commitboard.aggregate.leaderboard import partition_activity, summarize_repositories
from commitboard.aggregate.models import AggregatedReport, LeaderboardEntry, Period
from commitboard.config import AppSettings, load_settings
from commitboard.fetchers.rate_limit import fetch_authenticated_user, fetch_rate_limit
from commitboard.github_client import AuthFailureError, GitHubAPIError, GitHubClient, RateLimitedError
from commitboard.service import AuthorNotFoundError, ReportService

app = typer.Typer(add_completion=False, help="Developer commit leaderboards across GitHub repositories.")

T = TypeVar("T")

DateOption = Annotated[
    datetime | None,
    typer.Option("--date", formats=["%Y-%m-%d"], help="Anchor date for the report (defaults to today)."),
]
PeriodOption = Annotated[
    Period | None,
    typer.Option("--period", case_sensitive=False, help="Report period (defaults to the configured period)."),
]


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s - %(message)s")


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", help="Enable verbose logging output.")] = False,
) -> None:
    """Configure logging before executing a sub-command."""
    _configure_logging(verbose)


@app.command()
def report(
    period: PeriodOption = None,
    date: DateOption = None,
    repo: Annotated[
        str | None,
        typer.Option("--repo", help="Report on a single repository across all of its branches."),
    ] = None,
    single: Annotated[
        bool,
        typer.Option("--single", help="Report on the configured default repository."),
    ] = False,
    force_refresh: Annotated[bool, typer.Option("--force-refresh", help="Bypass both cache tiers.")] = False,
    breakdown: Annotated[bool, typer.Option("--breakdown", help="Show per-repository totals.")] = False,
    export: Annotated[
        bool | None,
        typer.Option("--export/--no-export", help="Write the report to a JSON file."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", dir_okay=False, help="Path of the exported JSON file."),
    ] = None,
) -> None:
    """Print the leaderboard, inactive members and summary for a period."""
    settings = _settings_or_exit()
    service = ReportService.from_settings(settings)
    selected = period or settings.default_period
    if single and not repo:
        if not settings.default_repository:
            _handle_settings_error(ValueError("COMMITBOARD_DEFAULT_REPOSITORY must be configured for --single"))
        repo = settings.default_repository
    if repo and "/" not in repo and not settings.organization:
        _handle_settings_error(ValueError(f"COMMITBOARD_ORGANIZATION must be configured to resolve repository {repo}"))
    result = _run(service.get_report(selected, date, force_refresh=force_refresh, repository=repo))
    _echo_report(result)
    if breakdown:
        _echo_breakdown(result)
    if settings.export_json if export is None else export:
        target = output or _export_path(result)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(orjson.dumps(result.to_document(), option=orjson.OPT_INDENT_2))
        typer.echo(f"Report exported to {target}")


@app.command()
def leaderboard(
    period: PeriodOption = None,
    date: DateOption = None,
    top: Annotated[int | None, typer.Option("--top", min=1, help="Number of top entries.")] = None,
    bottom: Annotated[int | None, typer.Option("--bottom", min=1, help="Number of bottom entries.")] = None,
) -> None:
    """Print the top and bottom of the ranked leaderboard."""
    settings = _settings_or_exit()
    service = ReportService.from_settings(settings)
    board = _run(service.leaderboard(period or settings.default_period, date, top_n=top, bottom_n=bottom))
    typer.echo(f"{board.period.upper()} LEADERBOARD - {board.anchor_date.isoformat()} ({board.total} developers)")
    typer.echo("Top:")
    for index, entry in enumerate(board.top, start=1):
        typer.echo(_format_entry(str(index), entry))
    typer.echo("Bottom:")
    for entry in board.bottom:
        typer.echo(_format_entry("-", entry))


@app.command()
def author(
    handle: Annotated[str, typer.Argument(help="GitHub login or commit author name.")],
    date: DateOption = None,
    period: PeriodOption = None,
) -> None:
    """Print per-period stats for one author."""
    settings = _settings_or_exit()
    service = ReportService.from_settings(settings)
    try:
        detail = _run(service.get_author_detail(handle, date, period=period))
    except AuthorNotFoundError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"{detail.username} ({detail.name}) {detail.email}".rstrip())
    for selected, stats in detail.periods.items():
        typer.echo(
            f"  {selected:<8} commits={stats.commits} +{stats.additions} -{stats.deletions} "
            f"net={stats.net_lines} repos={', '.join(sorted(stats.repositories)) or '-'}",
        )


@app.command()
def overview() -> None:
    """Print the repositories and roster size in scope."""
    settings = _settings_or_exit()
    service = ReportService.from_settings(settings)
    scope = _run(service.overview())
    typer.echo(f"Organization: {scope.organization or '(all accessible repositories)'}")
    typer.echo(f"Repositories: {len(scope.repositories)}")
    typer.echo(f"Contributors: {scope.total_contributors}")
    for name in scope.repositories:
        typer.echo(f"  {name}")


@app.command()
def reconcile(date: DateOption = None) -> None:
    """Regenerate missing or stale snapshots for every period."""
    settings = _settings_or_exit()
    service = ReportService.from_settings(settings)
    outcomes = _run(service.reconcile(date))
    for outcome in outcomes:
        suffix = f": {outcome.error}" if outcome.error else ""
        typer.echo(f"{outcome.period}: {outcome.status}{suffix}")
    if any(outcome.status == "failed" for outcome in outcomes):
        raise typer.Exit(code=1)


@app.command("cache-status")
def cache_status() -> None:
    """Print the state of the snapshot cache."""
    settings = _settings_or_exit()
    service = ReportService.from_settings(settings)
    status = _run(service.cache_status())
    typer.echo(f"Memory entries: {status.memory_entries} (ttl {status.memory_ttl_seconds:.0f}s)")
    typer.echo(f"Snapshot ttl: {status.file_ttl_seconds:.0f}s")
    for snapshot in status.snapshots:
        state = "valid" if snapshot.is_valid else "stale"
        typer.echo(
            f"  {snapshot.period}/{snapshot.file} {snapshot.age_minutes} min {state} "
            f"{snapshot.size_bytes / 1024:.2f} KB",
        )


@app.command("cache-clear")
def cache_clear(
    all_tiers: Annotated[bool, typer.Option("--all", help="Also delete snapshot files.")] = False,
) -> None:
    """Clear cached reports."""
    settings = _settings_or_exit()
    service = ReportService.from_settings(settings)
    if all_tiers:
        result = _run(service.clear_all())
        typer.echo(
            f"Cache cleared: {result.memory_entries_removed} memory entries, {result.files_deleted} files deleted",
        )
        return
    removed = service.clear_memory()
    typer.echo(f"Memory cache cleared ({removed} entries removed)")


@app.command()
def doctor() -> None:
    """Validate configuration and verify GitHub API connectivity."""
    settings = _settings_or_exit()
    scope = settings.organization or "all accessible repositories"
    typer.echo(f"Loaded configuration for: {scope}")
    asyncio.run(_doctor(settings))


async def _doctor(settings: AppSettings) -> None:
    try:
        async with GitHubClient(settings) as client:
            user = await fetch_authenticated_user(client)
            budget = await fetch_rate_limit(client)
    except GitHubAPIError as exc:
        typer.echo(f"Failed to reach GitHub API: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Authenticated as: {user.login}")
    typer.echo(f"Rate limit: {budget.remaining}/{budget.limit} remaining, resets at {budget.reset.isoformat()}")


def _run(coroutine: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coroutine)
    except AuthFailureError as exc:
        typer.secho(f"Authentication failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    except RateLimitedError as exc:
        reset = exc.reset_at.isoformat() if exc.reset_at else "unknown"
        typer.secho(f"Rate limit exhausted, resets at {reset}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    except GitHubAPIError as exc:
        typer.secho(f"GitHub API error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _settings_or_exit() -> AppSettings:
    try:
        return load_settings()
    except ValueError as exc:
        _handle_settings_error(exc)


def _handle_settings_error(exc: ValueError) -> NoReturn:
    typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def _format_entry(rank: str, entry: LeaderboardEntry) -> str:
    repositories = entry.repositories
    if not repositories:
        repo_display = "No Activity"
    elif len(repositories) <= 2:
        repo_display = ", ".join(repositories)
    else:
        repo_display = f"{', '.join(repositories[:2])} (+{len(repositories) - 2} more)"
    return (
        f"{rank:>4}  {entry.username:<20} {entry.name:<24} {entry.commits:>6} "
        f"+{entry.additions:<8} -{entry.deletions:<8} {entry.net_lines:>8}  {repo_display}"
    )


def _echo_report(result: AggregatedReport) -> None:
    scope = result.repository or "all repositories"
    typer.echo(f"{result.period.upper()} REPORT - {result.anchor_date.isoformat()} ({scope})")
    active, inactive = partition_activity(result.aggregated)
    if not active and not inactive:
        typer.echo("No team members found.")
        return
    for index, entry in enumerate(active, start=1):
        typer.echo(_format_entry(str(index), entry))
    if inactive:
        typer.echo("--- Inactive Team Members (No commits in this period) ---")
        for entry in inactive:
            typer.echo(_format_entry("-", entry))
    total_additions = sum(entry.additions for entry in active)
    total_deletions = sum(entry.deletions for entry in active)
    typer.echo(f"Total Team Members: {len(active) + len(inactive)}")
    typer.echo(f"Active Developers: {len(active)}")
    typer.echo(f"Inactive Developers: {len(inactive)}")
    typer.echo(f"Total Commits: {sum(entry.commits for entry in active)}")
    typer.echo(f"Net Lines Changed: {total_additions - total_deletions}")


def _echo_breakdown(result: AggregatedReport) -> None:
    typer.echo("Repository breakdown:")
    for summary in summarize_repositories(result.by_repo):
        typer.echo(
            f"  {summary.repository:<30} devs={summary.developers} commits={summary.commits} "
            f"+{summary.additions} -{summary.deletions} net={summary.net_lines}",
        )


def _export_path(result: AggregatedReport) -> Path:
    stamp = result.anchor_date.isoformat()
    if result.repository:
        slug = result.repository.replace("/", "__")
        return Path(f"repo_{slug}_{result.period}_report_{stamp}.json")
    return Path(f"multi_repo_{result.period}_report_{stamp}.json")


if __name__ == "__main__":
    app()
