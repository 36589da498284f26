"""Custom exceptions for GitHub lookups."""

from __future__ import annotations


class GithubError(Exception):
    """Base exception for GitHub lookup failures."""


class GithubConfigurationError(GithubError):
    """Raised when credentials are missing or rejected."""


class GithubRateLimitError(GithubError):
    """
    Raised when GitHub enforces a rate limit or exhausts the query cost budget.

    Never retried within a run: the lookup is treated as unavailable until a
    later run.
    """

    def __init__(self, message: str, retry_after: int | float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class GithubTransientNetworkError(GithubError):
    """Raised when GitHub stays unreachable after all retries."""


class GithubResponseError(GithubError):
    """Raised when a response lacks the data a lookup needs."""


# Errors which mean the provider is unusable for the whole run
FATAL_GITHUB_ERRORS = (GithubConfigurationError, GithubTransientNetworkError)
