"""
Enrichment Orchestrator - turn catalog entries into enrichment records.

Flow:
1. prepare        - load the persisted caches, fetch issue label config
2. enrich_catalog - resolve Maven info for every entry, relate duplicates,
                    then enrich every entry concurrently
3. finish         - persist the caches for the next run

Per entry, lookups that fail for that entry alone (rate limits, partial
responses, collaborator errors) leave the matching fields empty. Only an
unusable provider (unreachable, bad credentials) aborts the run, once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Sequence, TypeVar

from scm_enricher.cache.persistable_cache import PersistableCache
from scm_enricher.core.tracing import TracingContext
from scm_enricher.entities import (
    CatalogEntry,
    ContributorInfo,
    EnrichmentRecord,
    EnrichmentRun,
    MavenInfo,
    MetadataLocation,
)
from scm_enricher.services.duplicate_detector import find_duplicates
from scm_enricher.services.github.coordinates import is_github_url, parse_github_url
from scm_enricher.services.github.exceptions import FATAL_GITHUB_ERRORS, GithubError
from scm_enricher.services.github.graphql_client import GithubGraphQLClient
from scm_enricher.services.image_resolver import ImageInformation, ImageResolver
from scm_enricher.services.issue_counter import IssueCounter, IssueInformation
from scm_enricher.services.label_extractor import LabelResolver
from scm_enricher.services.maven_resolver import MavenResolver
from scm_enricher.services.metadata_path_resolver import MetadataPathResolver
from scm_enricher.services.sponsor_finder import NullSponsorFinder, SponsorFinder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EnrichmentOrchestrator:
    def __init__(
        self,
        client: GithubGraphQLClient,
        image_cache: PersistableCache,
        metadata_cache: PersistableCache,
        issue_cache: PersistableCache,
        label_resolver: LabelResolver,
        maven_resolver: MavenResolver,
        sponsor_finder: Optional[SponsorFinder] = None,
    ):
        self.client = client
        self.image_cache = image_cache
        self.metadata_cache = metadata_cache
        self.issue_cache = issue_cache
        self.label_resolver = label_resolver
        self.maven_resolver = maven_resolver
        self.sponsor_finder = sponsor_finder or NullSponsorFinder()

        self.images = ImageResolver(client, image_cache)
        self.metadata_paths = MetadataPathResolver(client, metadata_cache)
        self.issues = IssueCounter(client, issue_cache)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def prepare(self) -> None:
        logger.info(f"Ingested {self.image_cache.load()} cached images.")
        logger.info(f"Ingested {self.metadata_cache.load()} cached metadata file locations.")
        logger.info(f"Ingested {self.issue_cache.load()} cached issue counts.")
        await self.label_resolver.load()

    async def finish(self) -> None:
        logger.info(f"Persisted {self.image_cache.persist()} cached repository images.")
        logger.info(f"Persisted {self.metadata_cache.persist()} cached metadata file locations.")
        logger.info(f"Persisted {self.issue_cache.persist()} issue counts.")

    def reset(self) -> None:
        """Forget in-memory state; persisted snapshots are kept."""
        self.image_cache.flush_all()
        self.metadata_cache.flush_all()
        self.issue_cache.flush_all()
        self.label_resolver.reset()

    # =========================================================================
    # Catalog
    # =========================================================================

    async def enrich_catalog(self, entries: Sequence[CatalogEntry]) -> EnrichmentRun:
        if not TracingContext.get_run_id():
            TracingContext.set(run_id=TracingContext.generate_run_id())
        prefix = TracingContext.get_log_prefix()
        logger.info(f"{prefix} Enriching {len(entries)} catalog entries")

        maven_results = await asyncio.gather(*(self._resolve_maven(entry) for entry in entries))
        maven_infos = {entry.artifact: maven for entry, maven in zip(entries, maven_results)}

        duplicates = find_duplicates(entries, maven_infos)

        tasks = [
            asyncio.ensure_future(self._enrich_entry_traced(entry, maven_infos.get(entry.artifact)))
            for entry in entries
        ]
        try:
            results = await asyncio.gather(*tasks)
        except Exception as e:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if isinstance(e, FATAL_GITHUB_ERRORS):
                logger.error(f"{prefix} Enrichment run aborted, GitHub is unusable: {e}")
            else:
                logger.error(f"{prefix} Enrichment run aborted: {e}")
            raise

        records = [record for record in results if record is not None]
        logger.info(
            f"{prefix} Created {len(records)} enrichment records, "
            f"{len(duplicates)} entries have duplicates"
        )
        return EnrichmentRun(records=records, duplicates=duplicates)

    async def _resolve_maven(self, entry: CatalogEntry) -> Optional[MavenInfo]:
        try:
            return await self.maven_resolver.resolve(entry.artifact)
        except Exception as e:
            logger.warning(f"Could not resolve Maven info for {entry.artifact}: {e}")
            return None

    async def _enrich_entry_traced(
        self, entry: CatalogEntry, maven: Optional[MavenInfo]
    ) -> Optional[EnrichmentRecord]:
        # Context vars are per task
        TracingContext.set(artifact=entry.artifact, repository=entry.metadata.scm_url or "")
        return await self.enrich_entry(entry, maven)

    # =========================================================================
    # Entry
    # =========================================================================

    async def enrich_entry(
        self, entry: CatalogEntry, maven: Optional[MavenInfo] = None
    ) -> Optional[EnrichmentRecord]:
        key = entry.metadata.source_control
        scm_url = entry.metadata.scm_url
        if not key or not scm_url:
            return None

        if not is_github_url(scm_url):
            return EnrichmentRecord(key=key, url=scm_url)

        coords = parse_github_url(scm_url)
        if coords is None:
            logger.warning(f"Cannot read a repository out of {scm_url} for {entry.artifact}")
            return EnrichmentRecord(key=key, url=scm_url)

        group_id = maven.group_id if maven else None
        artifact_id = maven.artifact_id if maven else None

        labels = self.label_resolver.get_labels(scm_url, artifact_id)

        issue_info, image_info, location = await asyncio.gather(
            self.issues.get_issue_information(coords, labels, scm_url),
            self._optional(self.images.get_image_information(coords, scm_url), f"images of {scm_url}"),
            self._optional(
                self.metadata_paths.get_metadata_location(coords, group_id, artifact_id, scm_url),
                f"metadata path of {group_id}:{artifact_id}",
            ),
        )

        if location is None:
            logger.warning(f"Could not locate the extension metadata path for {artifact_id}")

        # Sponsors and contributors can be narrowed to the extension's folder once it is known
        subpath = location.extension_path_in_repo if location else None
        sponsors, contributors = await asyncio.gather(
            self._collaborator(
                self.sponsor_finder.find_sponsors(coords.owner, coords.name, subpath), [], "sponsors"
            ),
            self._collaborator(
                self.sponsor_finder.get_contributors(coords.owner, coords.name, subpath), [], "contributors"
            ),
        )

        return self._assemble(
            key, scm_url, coords.owner, coords.name, labels, issue_info, image_info, location, sponsors, contributors
        )

    @staticmethod
    def _assemble(
        key: str,
        scm_url: str,
        owner: str,
        project: str,
        labels: Optional[List[str]],
        issue_info: IssueInformation,
        image_info: Optional[ImageInformation],
        location: Optional[MetadataLocation],
        sponsors: List[str],
        contributors: List[ContributorInfo],
    ) -> EnrichmentRecord:
        fields: Dict[str, Any] = {
            "key": key,
            "url": scm_url,
            "project": project,
            "owner": owner,
            "issues_url": issue_info.issues_url,
            "issue_count": issue_info.issue_count,
            "labels": labels,
            "metadata_location": location,
            "sponsors": sponsors or [],
            "contributors": contributors or [],
        }
        if image_info is not None:
            fields["owner_image_url"] = image_info.owner_image_url
            fields["social_image"] = image_info.social_image
        return EnrichmentRecord(**fields)

    @staticmethod
    async def _optional(lookup: Awaitable[T], what: str) -> Optional[T]:
        """Await a GitHub lookup, turning non-fatal failures into None."""
        try:
            return await lookup
        except FATAL_GITHUB_ERRORS:
            raise
        except GithubError as e:
            logger.warning(f"Skipping {what}: {e}")
            return None

    @staticmethod
    async def _collaborator(lookup: Awaitable[T], default: T, what: str) -> T:
        """External collaborators never fail the entry."""
        try:
            return await lookup
        except FATAL_GITHUB_ERRORS:
            raise
        except Exception as e:
            logger.warning(f"Skipping {what}: {e}")
            return default
