"""
Maven Resolver - groupId, artifactId, version and release time for an entry.

Registry coordinates look like `io.quarkiverse.foo:quarkus-foo::jar:1.2.0`.
The release timestamp comes from Maven Central's search API; when Central
cannot be asked or does not know the artifact, the parsed coordinate is
returned without a timestamp.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from scm_enricher.config import settings
from scm_enricher.entities import MavenInfo

logger = logging.getLogger(__name__)


class MavenResolver(Protocol):
    async def resolve(self, coordinate: str) -> Optional[MavenInfo]: ...


def parse_coordinate(coordinate: Optional[str]) -> Optional[MavenInfo]:
    """Split a group:artifact[:packaging...]:version coordinate; None if malformed."""
    if not coordinate:
        return None
    parts = coordinate.split(":")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    version = parts[-1] if len(parts) >= 3 and parts[-1] else None
    return MavenInfo(group_id=parts[0], artifact_id=parts[1], version=version)


class MavenCentralResolver:
    def __init__(
        self,
        search_url: Optional[str] = None,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.search_url = search_url or settings.MAVEN_SEARCH_URL
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def resolve(self, coordinate: str) -> Optional[MavenInfo]:
        info = parse_coordinate(coordinate)
        if info is None:
            logger.warning(f"Cannot parse Maven coordinate {coordinate!r}")
            return None
        if not info.version:
            return info

        timestamp = await self._fetch_timestamp(info)
        if timestamp is None:
            return info
        return info.model_copy(update={"timestamp": timestamp})

    async def _fetch_timestamp(self, info: MavenInfo) -> Optional[int]:
        query = f'g:"{info.group_id}" AND a:"{info.artifact_id}" AND v:"{info.version}"'
        try:
            response = await self._client.get(
                self.search_url,
                params={"q": query, "core": "gav", "rows": 1, "wt": "json"},
            )
            response.raise_for_status()
            docs = (response.json().get("response") or {}).get("docs") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.info(f"No release timestamp for {info.group_id}:{info.artifact_id}:{info.version}: {e}")
            return None

        if not docs or docs[0].get("timestamp") is None:
            return None
        try:
            return int(docs[0]["timestamp"])
        except (TypeError, ValueError):
            return None
