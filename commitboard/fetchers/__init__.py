"""Fetchers for GitHub entities used during aggregation."""

from . import branches, commits, contributors, rate_limit, repositories

__all__ = [
    "branches",
    "commits",
    "contributors",
    "rate_limit",
    "repositories",
]
