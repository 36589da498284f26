"""Fetch raw file contents from GitHub repositories."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from scm_enricher.config import settings
from scm_enricher.services.github.exceptions import (
    GithubError,
    GithubRateLimitError,
    GithubTransientNetworkError,
)

logger = logging.getLogger(__name__)


class RawFileFetcher:
    """Reads files from the default branch via raw.githubusercontent.com."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.GITHUB_RAW_URL).rstrip("/")
        self.token = token if token is not None else settings.GITHUB_TOKEN
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout or settings.GITHUB_TIMEOUT_SECONDS
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_raw_file_contents(self, owner: str, name: str, path: str) -> str:
        """
        Return the text of `path` on the default branch.

        A file that does not exist yields an empty string.
        """
        url = f"{self.base_url}/{owner}/{name}/HEAD/{path.lstrip('/')}"
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}

        try:
            response = await self._client.get(url, headers=headers, follow_redirects=True)
        except httpx.TransportError as e:
            raise GithubTransientNetworkError(f"Could not fetch {url}: {e}") from e

        if response.status_code == 404:
            logger.info(f"No file at {owner}/{name}/{path}")
            return ""
        if response.status_code == 429:
            raise GithubRateLimitError(f"Rate limited fetching {url}")
        if response.status_code >= 400:
            raise GithubError(f"Fetching {url} failed with HTTP {response.status_code}")

        return response.text
