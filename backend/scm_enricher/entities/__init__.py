"""Data models shared across the enrichment pipeline"""

from .catalog_entry import CatalogEntry, ExtensionMetadata, MavenInfo
from .enrichment_record import (
    ContributorInfo,
    DuplicateRelation,
    DuplicateRelationship,
    EnrichmentRecord,
    EnrichmentRun,
    MetadataLocation,
    RepoCoordinates,
)

__all__ = [
    # Input
    "CatalogEntry",
    "ExtensionMetadata",
    "MavenInfo",
    # Output
    "ContributorInfo",
    "DuplicateRelation",
    "DuplicateRelationship",
    "EnrichmentRecord",
    "EnrichmentRun",
    "MetadataLocation",
    "RepoCoordinates",
]
