"""Async GitHub API client with retry, error classification and pagination helpers."""

import asyncio
import logging
from datetime import UTC, datetime
from types import TracebackType
from typing import Any, Self, TYPE_CHECKING, cast
from collections.abc import AsyncIterator, Mapping

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential_jitter
from tenacity.wait import wait_base

if TYPE_CHECKING:
    from commitboard.config import AppSettings

LOGGER = logging.getLogger(__name__)

_RETRY_FAILURE_MESSAGE = "GitHub API request failed after retries"
_UNEXPECTED_PAYLOAD_MESSAGE = "Unexpected response payload type"
_UNAUTHORIZED_STATUS = 401
_FORBIDDEN_STATUS = 403
_NOT_FOUND_STATUS = 404
_RATE_LIMIT_STATUS = 429
_NO_CONTENT_STATUS = 204
_SERVER_ERROR_LOWER = 500
_SERVER_ERROR_UPPER = 600


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub API returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Attach HTTP status metadata to the exception instance."""
        super().__init__(message)
        self.status_code = status_code


class AuthFailureError(GitHubAPIError):
    """Raised when the configured token is expired or invalid."""


class RateLimitedError(GitHubAPIError):
    """Raised when the request quota is exhausted or a secondary limit applies.

    ``retry_after`` is only set for secondary limits, which are worth waiting
    out. An exhausted primary budget carries ``reset_at`` instead.
    """

    def __init__(
        self,
        message: str = "GitHub API rate limit encountered",
        *,
        status_code: int | None = None,
        reset_at: datetime | None = None,
        retry_after: float | None = None,
    ) -> None:
        """Store the reset time or retry delay reported by the server."""
        super().__init__(message, status_code=status_code)
        self.reset_at = reset_at
        self.retry_after = retry_after


class NotFoundError(GitHubAPIError):
    """Raised when a repository, branch or organization is absent or inaccessible."""


class TransientError(GitHubAPIError):
    """Raised for network failures, timeouts and server-side errors."""


def is_retryable(exc: BaseException) -> bool:
    """Return True for failures that are worth another attempt."""
    if isinstance(exc, RateLimitedError):
        return exc.retry_after is not None
    return isinstance(exc, TransientError)


class GitHubClient:
    """High-level asynchronous client for interacting with the GitHub REST API."""

    def __init__(
        self,
        settings: "AppSettings",
        *,
        timeout: float | None = None,
        max_attempts: int = 5,
        retry_wait: wait_base | None = None,
    ) -> None:
        """Configure the HTTP client with authentication headers and retry policy."""
        self._settings = settings
        headers = {
            "User-Agent": "commitboard/0.1",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        token = settings.github_token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=str(settings.github_api_base),
            headers=headers,
            timeout=httpx.Timeout(timeout or settings.request_timeout),
        )
        self._max_attempts = max_attempts
        self._retry_wait = retry_wait or wait_exponential_jitter(initial=1, max=10)

    @property
    def per_page(self) -> int:
        """Return the page size used for paginated listings."""
        return self._settings.per_page

    async def __aenter__(self) -> Self:
        """Enter the async context manager and return the client."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Ensure the underlying HTTP client is closed when exiting the context."""
        del exc_type, exc, tb
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Perform an HTTP request with retry and rate limit handling."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception(is_retryable),
            wait=self._retry_wait,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    response = await self._client.request(method, path, params=params, headers=headers)
                except httpx.TransportError as exc:
                    message = f"GitHub API transport failure for {path}: {exc!r}"
                    raise TransientError(message) from exc
                await self._raise_for_status(response)
                return response
        raise TransientError(_RETRY_FAILURE_MESSAGE)

    async def get_json(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        """Issue a GET request and decode its JSON body."""
        response = await self.request("GET", path, params=params)
        return self.parse_json(response)

    async def paginate(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Iterate over page-numbered GitHub listings until a short or empty page."""
        per_page = self._settings.per_page
        current_params: dict[str, Any] = {"per_page": per_page, "page": 1}
        if params:
            current_params.update(params)

        while True:
            response = await self.request(method, path, params=current_params, headers=headers)
            if response.status_code == _NO_CONTENT_STATUS or not response.content:
                break
            payload = self.parse_json(response)
            if not isinstance(payload, list):
                raise GitHubAPIError(_UNEXPECTED_PAYLOAD_MESSAGE, status_code=response.status_code)
            items = cast("list[dict[str, Any]]", payload)
            for item in items:
                yield item
            if len(items) < per_page:
                break
            current_params["page"] = int(current_params["page"]) + 1

    def parse_json(self, response: httpx.Response) -> Any:
        """Decode a JSON response or raise a GitHubAPIError on failure."""
        try:
            return response.json()
        except ValueError as exc:
            content_type = response.headers.get("Content-Type", "unknown")
            message = (
                "GitHub API returned an invalid JSON payload "
                f"(status {response.status_code}, content-type {content_type})"
            )
            raise GitHubAPIError(message, status_code=response.status_code) from exc

    async def _raise_for_status(self, response: httpx.Response) -> None:
        status_code = response.status_code
        if status_code < 400:
            return
        detail = f"GitHub API returned {status_code} for {response.request.url.path}: {response.text}"
        if status_code == _UNAUTHORIZED_STATUS:
            raise AuthFailureError(detail, status_code=status_code)
        if status_code in (_FORBIDDEN_STATUS, _RATE_LIMIT_STATUS):
            if response.headers.get("X-RateLimit-Remaining") == "0":
                reset_at = _parse_reset(response.headers.get("X-RateLimit-Reset"))
                LOGGER.error("GitHub API rate limit exhausted, resets at %s", reset_at)
                raise RateLimitedError(detail, status_code=status_code, reset_at=reset_at)
            retry_after_header = response.headers.get("Retry-After")
            if retry_after_header is not None or status_code == _RATE_LIMIT_STATUS:
                retry_after = _parse_retry_after(retry_after_header)
                LOGGER.warning("Secondary rate limit hit, retrying in %ss", retry_after)
                await asyncio.sleep(retry_after)
                raise RateLimitedError(detail, status_code=status_code, retry_after=retry_after)
            raise NotFoundError(detail, status_code=status_code)
        if status_code == _NOT_FOUND_STATUS:
            raise NotFoundError(detail, status_code=status_code)
        if _SERVER_ERROR_LOWER <= status_code < _SERVER_ERROR_UPPER:
            raise TransientError(detail, status_code=status_code)
        raise GitHubAPIError(detail, status_code=status_code)


def _parse_retry_after(value: str | None) -> float:
    if not value:
        return 1.0
    try:
        return float(value)
    except ValueError:  # pragma: no cover
        return 1.0


def _parse_reset(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except ValueError:
        return None
