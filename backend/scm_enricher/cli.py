"""
Command line entry point.

Run with: scm-enricher --output build/source-control.json
      or: python -m scm_enricher.cli --catalog extensions.json --output out.json

Loads the catalog (registry or file), enriches it, writes records and
duplicate relations as JSON, and persists the caches for the next run.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import httpx

from scm_enricher.cache.persistable_cache import DAY_IN_SECONDS, PersistableCache
from scm_enricher.cache.snapshot_store import FileSnapshotStore, RedisSnapshotStore, SnapshotStore
from scm_enricher.config import Settings, settings
from scm_enricher.core.logging import setup_logging
from scm_enricher.core.redis import get_redis
from scm_enricher.entities import CatalogEntry, EnrichmentRun, RepoCoordinates
from scm_enricher.services.catalog_loader import fetch_catalog, load_catalog_file
from scm_enricher.services.enrichment_orchestrator import EnrichmentOrchestrator
from scm_enricher.services.github.exceptions import GithubError
from scm_enricher.services.github.graphql_client import GithubGraphQLClient
from scm_enricher.services.github.raw_files import RawFileFetcher
from scm_enricher.services.label_extractor import LabelResolver
from scm_enricher.services.maven_resolver import MavenCentralResolver

logger = logging.getLogger(__name__)

IMAGE_CACHE_NAME = "github-api-for-images"
METADATA_PATH_CACHE_NAME = "github-api-for-extension-paths"
ISSUE_COUNT_CACHE_NAME = "github-api-for-issue-count"


def build_snapshot_store(config: Settings) -> SnapshotStore:
    if config.CACHE_BACKEND == "redis":
        return RedisSnapshotStore(get_redis(), prefix=config.REDIS_KEY_PREFIX)
    return FileSnapshotStore(config.CACHE_DIR)


def build_caches(
    config: Settings, store: SnapshotStore
) -> tuple[PersistableCache, PersistableCache, PersistableCache]:
    image_cache = PersistableCache(
        IMAGE_CACHE_NAME, config.IMAGE_CACHE_TTL_DAYS * DAY_IN_SECONDS, store
    )
    metadata_cache = PersistableCache(
        METADATA_PATH_CACHE_NAME, config.METADATA_PATH_CACHE_TTL_DAYS * DAY_IN_SECONDS, store
    )
    issue_cache = PersistableCache(
        ISSUE_COUNT_CACHE_NAME, config.ISSUE_COUNT_CACHE_TTL_DAYS * DAY_IN_SECONDS, store
    )
    return image_cache, metadata_cache, issue_cache


async def run_enrichment(
    entries: List[CatalogEntry],
    config: Settings = settings,
) -> EnrichmentRun:
    store = build_snapshot_store(config)
    image_cache, metadata_cache, issue_cache = build_caches(config, store)

    client = GithubGraphQLClient(
        token=config.GITHUB_TOKEN,
        url=config.GITHUB_GRAPHQL_URL,
        max_concurrency=config.GITHUB_MAX_CONCURRENCY,
        max_retries=config.GITHUB_MAX_RETRIES,
        timeout=config.GITHUB_TIMEOUT_SECONDS,
        backoff_seconds=config.GITHUB_BACKOFF_SECONDS,
    )
    raw_files = RawFileFetcher(base_url=config.GITHUB_RAW_URL, token=config.GITHUB_TOKEN)
    maven_resolver = MavenCentralResolver(search_url=config.MAVEN_SEARCH_URL)

    label_resolver = LabelResolver(
        client,
        raw_files,
        RepoCoordinates(owner=config.LABELLED_REPOSITORY_OWNER, name=config.LABELLED_REPOSITORY_NAME),
        config.BOT_CONFIG_PATH,
    )
    orchestrator = EnrichmentOrchestrator(
        client=client,
        image_cache=image_cache,
        metadata_cache=metadata_cache,
        issue_cache=issue_cache,
        label_resolver=label_resolver,
        maven_resolver=maven_resolver,
    )

    try:
        await orchestrator.prepare()
        run = await orchestrator.enrich_catalog(entries)
        await orchestrator.finish()
        return run
    finally:
        await client.aclose()
        await raw_files.aclose()
        await maven_resolver.aclose()


def write_run(run: EnrichmentRun, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", encoding="utf-8") as f:
        json.dump(run.model_dump(mode="json"), f, indent=2)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Enrich extension catalog entries with GitHub metadata",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        help="Read the catalog from this JSON file instead of the registry",
    )
    parser.add_argument(
        "--registry-url",
        default=None,
        help=f"Registry to fetch the catalog from (default: {settings.REGISTRY_URL})",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("source-control.json"),
        help="Where to write enrichment records (default: source-control.json)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    return parser.parse_args(argv)


async def load_entries(args: argparse.Namespace) -> List[CatalogEntry]:
    if args.catalog:
        return load_catalog_file(args.catalog)
    return await fetch_catalog(args.registry_url)


async def _main(args: argparse.Namespace) -> int:
    try:
        entries = await load_entries(args)
    except (httpx.HTTPError, OSError, ValueError) as e:
        logger.error(f"Could not load the extension catalog: {e}")
        return 1

    try:
        run = await run_enrichment(entries)
    except GithubError as e:
        logger.error(f"Enrichment failed: {e}")
        return 1

    write_run(run, args.output)
    logger.info(f"Wrote {len(run.records)} records to {args.output}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
