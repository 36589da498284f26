"""
Metadata Path Resolver - find an extension's quarkus-extension.yaml.

Extensions live in many repository layouts: alone at the repository root, in
a folder named after the artifact, in a folder named after the artifact
without the repository-name prefix, or in one of the extensions*/ folders of
large multi-extension repositories. One GraphQL query lists the META-INF
folder of every candidate; the location is only trusted when exactly one
candidate holds the descriptor. Zero matches and several matches both mean
"unknown", never a guess.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from scm_enricher.cache.persistable_cache import PersistableCache
from scm_enricher.entities import MetadataLocation, RepoCoordinates
from scm_enricher.services.github.exceptions import GithubResponseError
from scm_enricher.services.github.graphql_client import GithubGraphQLClient
from scm_enricher.services.github.responses import Ref, Tree, parse_response, response_data

logger = logging.getLogger(__name__)

DESCRIPTOR_FILENAME = "quarkus-extension.yaml"
META_INF_PATH = "runtime/src/main/resources/META-INF/"
DESCRIPTOR_SUFFIX = META_INF_PATH + DESCRIPTOR_FILENAME


def candidate_expressions(repo_name: str, artifact_id: str) -> List[Tuple[str, str]]:
    """
    Ordered (alias, git expression) pairs to probe for a META-INF folder.

    Some multi-extension projects name folders with just the part of the
    artifact id that differs from the repository name.
    """
    short_artifact_id = artifact_id.replace(f"{repo_name}-", "")
    return [
        ("metaInfs", f"HEAD:{META_INF_PATH}"),
        ("subfolderMetaInfs", f"HEAD:{artifact_id}/{META_INF_PATH}"),
        ("shortenedSubfolderMetaInfs", f"HEAD:{short_artifact_id}/{META_INF_PATH}"),
        ("quarkusSubfolderMetaInfs", f"HEAD:extensions/{short_artifact_id}/{META_INF_PATH}"),
        ("camelQuarkusCoreSubfolderMetaInfs", f"HEAD:extensions-core/{short_artifact_id}/{META_INF_PATH}"),
        ("camelQuarkusJvmSubfolderMetaInfs", f"HEAD:extensions-jvm/{short_artifact_id}/{META_INF_PATH}"),
        ("camelQuarkusSupportSubfolderMetaInfs", f"HEAD:extensions-support/{short_artifact_id}/{META_INF_PATH}"),
    ]


def build_metadata_path_query(candidates: List[Tuple[str, str]]) -> str:
    variable_defs = ", ".join(f"${alias}: String!" for alias, _ in candidates)
    lookups = "\n".join(
        f"""
    {alias}: object(expression: ${alias}) {{
      ... on Tree {{
        entries {{
          path
        }}
      }}
    }}"""
        for alias, _ in candidates
    )
    return f"""query($owner: String!, $name: String!, {variable_defs}) {{
  repository(owner: $owner, name: $name) {{
    defaultBranchRef {{
      name
    }}
{lookups}
  }}
}}"""


def find_descriptor_paths(repository: Dict[str, Any], aliases: List[str]) -> List[str]:
    """
    Descriptor paths across all candidate listings, in candidate order.

    Listings are flattened as they are, so a file reached through two
    candidates appears twice and makes the match ambiguous.
    """
    paths: List[str] = []
    for alias in aliases:
        raw = repository.get(alias)
        if not raw:
            continue
        tree = parse_response(Tree, raw, f"{alias} listing")
        for entry in tree.entries or []:
            if entry.path and entry.path.endswith("/" + DESCRIPTOR_FILENAME):
                paths.append(entry.path)
    return paths


def build_metadata_location(scm_url: str, default_branch: str, descriptor_path: str) -> MetadataLocation:
    path_in_repo = descriptor_path.replace(DESCRIPTOR_SUFFIX, "")
    base = scm_url.rstrip("/")
    return MetadataLocation(
        extension_yaml_url=f"{base}/blob/{default_branch}/{descriptor_path}",
        extension_path_in_repo=path_in_repo,
        extension_root_url=f"{base}/blob/{default_branch}/{path_in_repo}",
    )


class MetadataPathResolver:
    """Resolves and caches descriptor locations per groupId:artifactId."""

    def __init__(self, client: GithubGraphQLClient, cache: PersistableCache):
        self.client = client
        self.cache = cache

    async def get_metadata_location(
        self,
        coords: RepoCoordinates,
        group_id: Optional[str],
        artifact_id: Optional[str],
        scm_url: str,
    ) -> Optional[MetadataLocation]:
        if not artifact_id:
            return None

        artifact_key = f"{group_id}:{artifact_id}"
        cached = await self.cache.get_or_set(
            artifact_key,
            lambda: self._get_metadata_location_no_cache(coords, group_id, artifact_id, scm_url),
        )
        return MetadataLocation.model_validate(cached) if cached else None

    async def _get_metadata_location_no_cache(
        self,
        coords: RepoCoordinates,
        group_id: Optional[str],
        artifact_id: str,
        scm_url: str,
    ) -> Optional[Dict[str, Any]]:
        candidates = candidate_expressions(coords.name, artifact_id)
        variables: Dict[str, Any] = {"owner": coords.owner, "name": coords.name}
        variables.update({alias: expression for alias, expression in candidates})

        body = await self.client.query(build_metadata_path_query(candidates), variables)
        repository = response_data(body).get("repository")

        # A rate limited or failed query may come back without a repository
        if not isinstance(repository, dict):
            raise GithubResponseError(
                f"No repository data for {coords.owner}/{coords.name} while locating {group_id}:{artifact_id}"
            )

        default_branch = parse_response(Ref, repository.get("defaultBranchRef") or {}, "default branch").name
        if not default_branch:
            raise GithubResponseError(f"No default branch reported for {coords.owner}/{coords.name}")

        descriptor_paths = find_descriptor_paths(repository, [alias for alias, _ in candidates])

        # Exactly one: with fewer we know nothing, with more we would be guessing
        if len(descriptor_paths) != 1:
            logger.warning(
                f"Could not identify the extension yaml path for {group_id}:{artifact_id}; found {descriptor_paths}"
            )
            return None

        location = build_metadata_location(scm_url, default_branch, descriptor_paths[0])
        return location.model_dump()
