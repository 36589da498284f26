"""
GitHub GraphQL client.

Every call is one independent POST to the GraphQL endpoint. GitHub meters
GraphQL by query cost rather than request count, so batching would not buy
anything; bounding how many queries are in flight does.

Failure handling:
- Transport errors and 5xx responses are retried with exponential backoff,
  then surface as GithubTransientNetworkError
- Rate limit / cost exhaustion surfaces as GithubRateLimitError immediately,
  and every later query fails the same way until the limit resets
- 401 surfaces as GithubConfigurationError
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from scm_enricher.config import settings
from scm_enricher.services.github.exceptions import (
    GithubConfigurationError,
    GithubError,
    GithubRateLimitError,
    GithubTransientNetworkError,
)

logger = logging.getLogger(__name__)

RATE_LIMITED_ERROR_TYPE = "RATE_LIMITED"


class _RetryableStatusError(Exception):
    """Internal marker for HTTP statuses worth another attempt."""

    def __init__(self, status_code: int):
        super().__init__(f"GitHub answered HTTP {status_code}")
        self.status_code = status_code


def _retry_after_from_headers(headers: httpx.Headers) -> Optional[float]:
    """Seconds until GitHub will accept queries again, if the headers say."""
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            pass

    reset = headers.get("X-RateLimit-Reset")
    if reset:
        try:
            return max(0.0, float(reset) - time.time())
        except ValueError:
            pass
    return None


def _is_rate_limited_response(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code == 403:
        if response.headers.get("X-RateLimit-Remaining") == "0":
            return True
        if response.headers.get("Retry-After"):
            # Secondary rate limit
            return True
    return False


def _rate_limit_error_message(body: Dict[str, Any]) -> Optional[str]:
    for error in body.get("errors") or []:
        if isinstance(error, dict) and error.get("type") == RATE_LIMITED_ERROR_TYPE:
            return error.get("message") or "GitHub GraphQL rate limit exceeded"
    return None


class GithubGraphQLClient:
    """Executes GraphQL documents against GitHub with bounded concurrency."""

    def __init__(
        self,
        token: Optional[str] = None,
        url: Optional[str] = None,
        max_concurrency: Optional[int] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        backoff_seconds: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            token: GitHub token; defaults to settings.GITHUB_TOKEN
            url: GraphQL endpoint; defaults to settings.GITHUB_GRAPHQL_URL
            max_concurrency: Queries allowed in flight at once
            max_retries: Attempts per query for transient failures
            timeout: Per-request timeout in seconds
            backoff_seconds: Base of the exponential backoff between attempts
            http_client: Pre-built client (tests use one with a MockTransport)
        """
        self.token = token if token is not None else settings.GITHUB_TOKEN
        self.url = url or settings.GITHUB_GRAPHQL_URL
        self.max_retries = max(1, max_retries if max_retries is not None else settings.GITHUB_MAX_RETRIES)
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.GITHUB_BACKOFF_SECONDS
        )
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.GITHUB_MAX_CONCURRENCY)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout or settings.GITHUB_TIMEOUT_SECONDS
        )
        self._rate_limited_until: Optional[float] = None

    async def __aenter__(self) -> "GithubGraphQLClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise GithubConfigurationError(
                "GitHub token is not configured. Set GITHUB_TOKEN to query the GraphQL API."
            )
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }

    def _check_rate_limit_window(self) -> None:
        if self._rate_limited_until is None:
            return
        remaining = self._rate_limited_until - time.time()
        if remaining > 0:
            raise GithubRateLimitError(
                "GitHub rate limit still in effect; skipping query",
                retry_after=remaining,
            )
        self._rate_limited_until = None

    def _enter_rate_limit_window(self, retry_after: Optional[float]) -> None:
        # Without a reset time, stay rate limited for the rest of the run
        until = time.time() + retry_after if retry_after is not None else float("inf")
        if self._rate_limited_until is None or until > self._rate_limited_until:
            self._rate_limited_until = until

    async def query(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute one GraphQL document.

        Returns:
            The decoded JSON body, unvalidated. It may carry both `data` and
            `errors` when GitHub resolved only part of the query.

        Raises:
            GithubRateLimitError: rate limit or cost budget exhausted
            GithubTransientNetworkError: GitHub unreachable after all retries
            GithubConfigurationError: missing or rejected credentials
            GithubError: any other unusable response
        """
        self._check_rate_limit_window()
        headers = self._headers()
        payload: Dict[str, Any] = {"query": document}
        if variables:
            payload["variables"] = variables

        async with self._semaphore:
            response = await self._post_with_retries(payload, headers)

        if _is_rate_limited_response(response):
            retry_after = _retry_after_from_headers(response.headers)
            self._enter_rate_limit_window(retry_after)
            logger.warning(f"GitHub rate limit hit (HTTP {response.status_code}); retry after {retry_after}s")
            raise GithubRateLimitError(
                f"GitHub rate limit exceeded (HTTP {response.status_code})",
                retry_after=retry_after,
            )

        if response.status_code == 401:
            raise GithubConfigurationError("GitHub rejected the configured token (HTTP 401)")

        if response.status_code >= 400:
            raise GithubError(f"GitHub GraphQL request failed with HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise GithubError(f"GitHub returned a non-JSON body: {e}") from e

        if not isinstance(body, dict):
            raise GithubError("GitHub returned an unexpected JSON document")

        message = _rate_limit_error_message(body)
        if message:
            retry_after = _retry_after_from_headers(response.headers)
            self._enter_rate_limit_window(retry_after)
            logger.warning(f"GitHub GraphQL cost budget exhausted: {message}")
            raise GithubRateLimitError(message, retry_after=retry_after)

        return body

    async def _post_with_retries(
        self, payload: Dict[str, Any], headers: Dict[str, str]
    ) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=30),
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatusError)),
            reraise=False,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.post(self.url, json=payload, headers=headers)
                    if response.status_code >= 500:
                        raise _RetryableStatusError(response.status_code)
                    return response
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error(f"GitHub GraphQL endpoint unreachable after {self.max_retries} attempts: {cause}")
            raise GithubTransientNetworkError(
                f"GitHub GraphQL endpoint unreachable after {self.max_retries} attempts: {cause}"
            ) from cause
        # AsyncRetrying always either returns from the block or raises
        raise GithubTransientNetworkError("GitHub GraphQL request did not complete")
