"""Sponsor and contributor lookup boundary."""

from __future__ import annotations

from typing import List, Optional, Protocol

from scm_enricher.entities import ContributorInfo


class SponsorFinder(Protocol):
    """
    Finds the companies sponsoring an extension and the people contributing
    to it. `subpath` narrows the lookup to the extension's folder in
    multi-extension repositories.
    """

    async def find_sponsors(self, owner: str, repo: str, subpath: Optional[str] = None) -> List[str]: ...

    async def get_contributors(
        self, owner: str, repo: str, subpath: Optional[str] = None
    ) -> List[ContributorInfo]: ...


class NullSponsorFinder:
    """Used when no sponsor lookup is configured."""

    async def find_sponsors(self, owner: str, repo: str, subpath: Optional[str] = None) -> List[str]:
        return []

    async def get_contributors(
        self, owner: str, repo: str, subpath: Optional[str] = None
    ) -> List[ContributorInfo]:
        return []
