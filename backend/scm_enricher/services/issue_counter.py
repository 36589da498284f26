"""
Issue Counter - open issue counts, optionally narrowed to tracker labels.

The browsable issues URL is built without touching the API, so the page
always has a link even when the count is unavailable for this run.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import quote

from pydantic import BaseModel

from scm_enricher.cache.persistable_cache import PersistableCache
from scm_enricher.entities import RepoCoordinates
from scm_enricher.services.github.exceptions import (
    FATAL_GITHUB_ERRORS,
    GithubError,
    GithubResponseError,
)
from scm_enricher.services.github.graphql_client import GithubGraphQLClient
from scm_enricher.services.github.responses import IssueCountData, parse_response, response_data

logger = logging.getLogger(__name__)

OPEN_ISSUES_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    issues(states: OPEN) {
      totalCount
    }
  }
}
"""

LABELLED_OPEN_ISSUES_QUERY = """
query($owner: String!, $name: String!, $labels: [String!]) {
  repository(owner: $owner, name: $name) {
    issues(states: OPEN, filterBy: { labels: $labels }) {
      totalCount
    }
  }
}
"""


class IssueInformation(BaseModel):
    issues_url: str
    issue_count: Optional[int] = None


def build_issues_url(scm_url: str, labels: Optional[List[str]]) -> str:
    base = scm_url.rstrip("/")
    if not labels:
        return f"{base}/issues"
    encoded_labels = ",".join(quote(label, safe="") for label in labels)
    return f"{base}/issues?q=is%3Aopen+is%3Aissue+label%3A{encoded_labels}"


def issue_cache_key(coords: RepoCoordinates, labels: Optional[List[str]]) -> str:
    # Labels only ever come from one repository, so they identify it on their own
    if labels:
        return ",".join(f'"{label}"' for label in labels)
    return f"{coords.owner}-{coords.name}"


class IssueCounter:
    def __init__(self, client: GithubGraphQLClient, cache: PersistableCache):
        self.client = client
        self.cache = cache

    async def get_issue_information(
        self,
        coords: RepoCoordinates,
        labels: Optional[List[str]],
        scm_url: str,
    ) -> IssueInformation:
        issues_url = build_issues_url(scm_url, labels)
        try:
            cached = await self.cache.get_or_set(
                issue_cache_key(coords, labels),
                lambda: self._get_issue_information_no_cache(coords, labels, issues_url),
            )
        except FATAL_GITHUB_ERRORS:
            raise
        except GithubError as e:
            logger.warning(f"Issue count unavailable for {coords.owner}/{coords.name}: {e}")
            return IssueInformation(issues_url=issues_url)

        return IssueInformation.model_validate(cached)

    async def _get_issue_information_no_cache(
        self,
        coords: RepoCoordinates,
        labels: Optional[List[str]],
        issues_url: str,
    ) -> dict:
        variables = {"owner": coords.owner, "name": coords.name}
        if labels:
            variables["labels"] = list(labels)
            document = LABELLED_OPEN_ISSUES_QUERY
        else:
            document = OPEN_ISSUES_QUERY

        body = await self.client.query(document, variables)
        data = parse_response(
            IssueCountData, response_data(body), f"issue count of {coords.owner}/{coords.name}"
        )

        count = None
        if data.repository and data.repository.issues:
            count = data.repository.issues.total_count
        if count is None:
            raise GithubResponseError(f"No open issue count in response for {coords.owner}/{coords.name}")

        return IssueInformation(issues_url=issues_url, issue_count=count).model_dump()
