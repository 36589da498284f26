"""
Catalog Loader - read extension entries from the registry or a JSON file.

Registry metadata uses dashed keys, which are error-prone once they reach
templates, so they are renamed on the way in:
- scm-url  -> source_control
- icon-url -> icon
- "true"/"false" strings in unlisted -> booleans
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from scm_enricher.config import settings
from scm_enricher.entities import CatalogEntry

logger = logging.getLogger(__name__)

EXTENSIONS_PATH = "/client/extensions/all"


def normalize_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    normalized = dict(metadata or {})

    if "scm-url" in normalized:
        normalized["source_control"] = normalized.pop("scm-url")
    if "icon-url" in normalized:
        normalized["icon"] = normalized.pop("icon-url")

    unlisted = normalized.get("unlisted")
    if isinstance(unlisted, str):
        normalized["unlisted"] = unlisted.strip().lower() == "true"
    elif unlisted is None:
        normalized.pop("unlisted", None)

    categories = normalized.get("categories")
    if categories is None:
        normalized.pop("categories", None)
    elif isinstance(categories, str):
        normalized["categories"] = [categories]

    return normalized


def parse_catalog(raw_extensions: List[Dict[str, Any]]) -> List[CatalogEntry]:
    """Build entries, skipping (and logging) any the registry sent malformed."""
    entries: List[CatalogEntry] = []
    for raw in raw_extensions:
        try:
            entries.append(
                CatalogEntry(
                    artifact=raw["artifact"],
                    name=raw.get("name") or raw["artifact"],
                    description=raw.get("description"),
                    origins=raw.get("origins") or [],
                    metadata=normalize_metadata(raw.get("metadata")),
                )
            )
        except (KeyError, TypeError, ValidationError) as e:
            logger.warning(f"Skipping malformed catalog entry {raw.get('artifact', '<unknown>')!r}: {e}")
    return entries


def _extensions_from_document(document: Any) -> List[Dict[str, Any]]:
    if isinstance(document, dict):
        document = document.get("extensions") or []
    if not isinstance(document, list):
        raise ValueError("Catalog document must be a list of extensions or an object with an 'extensions' list")
    return [item for item in document if isinstance(item, dict)]


def load_catalog_file(path: str | Path) -> List[CatalogEntry]:
    with Path(path).open("r", encoding="utf-8") as f:
        document = json.load(f)
    entries = parse_catalog(_extensions_from_document(document))
    logger.info(f"Loaded {len(entries)} catalog entries from {path}")
    return entries


async def fetch_catalog(
    registry_url: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> List[CatalogEntry]:
    url = (registry_url or settings.REGISTRY_URL).rstrip("/") + EXTENSIONS_PATH
    if http_client is not None:
        response = await http_client.get(url)
    else:
        async with httpx.AsyncClient(timeout=60) as client:
            response = await client.get(url)
    response.raise_for_status()

    entries = parse_catalog(_extensions_from_document(response.json()))
    logger.info(f"Fetched {len(entries)} catalog entries from {url}")
    return entries
