"""
Issue Label Resolver - map extensions of the core repository to issue labels.

The core repository's triage bot config assigns labels to directories:

    triage:
      rules:
        - labels: [area/hibernate-orm, area/persistence]
          directories:
            - extensions/hibernate-orm/
            - integration-tests/hibernate-orm

Matching contract, from artifact id to labels:
1. Only rule directories under extensions/ are used; a trailing "/" is ignored.
2. The short id is the artifact id without a leading "quarkus-".
3. The extension directory is extensions/<short id> when the listing has a
   top-level directory named exactly <short id>; otherwise the first
   extensions/<parent>/<short id> with an exact second-level name match.
   No exact match means no labels.
4. The labels are those of every rule whose directory equals the extension
   directory or contains it, in rule order, without duplicates.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import yaml

from scm_enricher.entities import RepoCoordinates
from scm_enricher.services.github.exceptions import FATAL_GITHUB_ERRORS, GithubError
from scm_enricher.services.github.graphql_client import GithubGraphQLClient
from scm_enricher.services.github.raw_files import RawFileFetcher
from scm_enricher.services.github.responses import ListingData, TreeEntry, parse_response, response_data

logger = logging.getLogger(__name__)

EXTENSIONS_ROOT = "extensions"
ARTIFACT_PREFIX = "quarkus-"
TREE_TYPE = "tree"

# Two levels of the extensions folder; GraphQL has no "or", so one level is
# nested inside the other
EXTENSIONS_LISTING_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    object(expression: "HEAD:extensions") {
      ... on Tree {
        entries {
          name
          type
          object {
            ... on Tree {
              entries {
                name
                type
              }
            }
          }
        }
      }
    }
  }
}
"""


def _parse_rules(config_text: str) -> List[Dict[str, Any]]:
    if not config_text or not config_text.strip():
        return []
    try:
        config = yaml.safe_load(config_text)
    except yaml.YAMLError as e:
        logger.warning(f"Could not parse bot config, no labels will be assigned: {e}")
        return []
    if not isinstance(config, dict):
        return []
    triage = config.get("triage")
    rules = triage.get("rules") if isinstance(triage, dict) else None
    return [rule for rule in rules or [] if isinstance(rule, dict)]


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value if item is not None]


class LabelExtractor:
    """Pure lookup from artifact id to tracker labels; does no I/O."""

    def __init__(self, config_text: str, repo_listing: Optional[Iterable[TreeEntry]]):
        self._directory_labels: List[tuple[str, List[str]]] = []
        for rule in _parse_rules(config_text):
            labels = _as_list(rule.get("labels"))
            if not labels:
                continue
            for directory in _as_list(rule.get("directories")):
                normalized = directory.rstrip("/")
                if normalized.startswith(EXTENSIONS_ROOT + "/"):
                    self._directory_labels.append((normalized, labels))

        self._top_level: List[str] = []
        self._second_level: List[tuple[str, str]] = []
        for entry in repo_listing or []:
            if entry.type != TREE_TYPE or not entry.name:
                continue
            self._top_level.append(entry.name)
            children = entry.object.entries if entry.object else None
            for child in children or []:
                if child.type == TREE_TYPE and child.name:
                    self._second_level.append((entry.name, child.name))

    def find_extension_directory(self, artifact_id: str) -> Optional[str]:
        short_id = artifact_id[len(ARTIFACT_PREFIX):] if artifact_id.startswith(ARTIFACT_PREFIX) else artifact_id
        if short_id in self._top_level:
            return f"{EXTENSIONS_ROOT}/{short_id}"
        for parent, child in self._second_level:
            if child == short_id:
                return f"{EXTENSIONS_ROOT}/{parent}/{child}"
        return None

    def get_labels(self, artifact_id: Optional[str]) -> Optional[List[str]]:
        if not artifact_id:
            return None
        directory = self.find_extension_directory(artifact_id)
        if directory is None:
            return None

        labels: List[str] = []
        for rule_directory, rule_labels in self._directory_labels:
            if directory == rule_directory or directory.startswith(rule_directory + "/"):
                for label in rule_labels:
                    if label not in labels:
                        labels.append(label)
        return labels or None


class LabelResolver:
    """
    Loads the bot config and extensions listing once per process and answers
    label lookups for entries of the labelled repository.
    """

    def __init__(
        self,
        client: GithubGraphQLClient,
        raw_files: RawFileFetcher,
        repository: RepoCoordinates,
        config_path: str,
    ):
        self.client = client
        self.raw_files = raw_files
        self.repository = repository
        self.config_path = config_path
        self._extractor: Optional[LabelExtractor] = None

    @property
    def repository_url(self) -> str:
        return f"https://github.com/{self.repository.owner}/{self.repository.name}"

    async def load(self) -> LabelExtractor:
        owner, name = self.repository.owner, self.repository.name

        try:
            config_text = await self.raw_files.get_raw_file_contents(owner, name, self.config_path)
        except FATAL_GITHUB_ERRORS:
            raise
        except GithubError as e:
            logger.warning(f"Could not fetch bot config {self.config_path} from {owner}/{name}: {e}")
            config_text = ""

        listing: Optional[List[TreeEntry]] = None
        try:
            body = await self.client.query(EXTENSIONS_LISTING_QUERY, {"owner": owner, "name": name})
            data = parse_response(ListingData, response_data(body), f"{EXTENSIONS_ROOT}/ listing")
            if data.repository and data.repository.object:
                listing = data.repository.object.entries
        except FATAL_GITHUB_ERRORS:
            raise
        except GithubError as e:
            logger.warning(f"Could not list {EXTENSIONS_ROOT}/ in {owner}/{name}: {e}")

        if listing is None:
            logger.warning(f"No {EXTENSIONS_ROOT}/ listing for {owner}/{name}; issue counts will not be filtered")

        self._extractor = LabelExtractor(config_text, listing)
        return self._extractor

    def get_labels(self, scm_url: str, artifact_id: Optional[str]) -> Optional[List[str]]:
        # Only the labelled repository's bot config is understood
        if self._extractor is None or scm_url.rstrip("/") != self.repository_url:
            return None
        return self._extractor.get_labels(artifact_id)

    def reset(self) -> None:
        self._extractor = None
