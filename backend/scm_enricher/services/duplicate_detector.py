"""
Duplicate Detector - relate catalog entries that share an artifactId.

Two entries are duplicates when their resolved artifactIds match but their
full coordinates differ (a relocated groupId, or two published versions).
Each relation describes the *other* entry relative to the one carrying it:
newer or older by release timestamp, or "different" when either timestamp is
unknown and the order cannot be told.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Mapping, Optional, Sequence

from scm_enricher.entities import (
    CatalogEntry,
    DuplicateRelation,
    DuplicateRelationship,
    MavenInfo,
)


def relationship_between(
    entry_timestamp: Optional[int], duplicate_timestamp: Optional[int]
) -> DuplicateRelationship:
    if entry_timestamp is None or duplicate_timestamp is None:
        return DuplicateRelationship.DIFFERENT
    if duplicate_timestamp > entry_timestamp:
        return DuplicateRelationship.NEWER
    return DuplicateRelationship.OLDER


def find_duplicates(
    entries: Sequence[CatalogEntry],
    maven_infos: Mapping[str, Optional[MavenInfo]],
) -> Dict[str, List[DuplicateRelation]]:
    """
    Args:
        entries: The whole catalog
        maven_infos: Resolved Maven info keyed by entry coordinate; entries
            without one never count as duplicates

    Returns:
        Relations keyed by the coordinate of the entry carrying them; entries
        without duplicates are absent
    """
    by_artifact_id: Dict[str, List[CatalogEntry]] = defaultdict(list)
    for entry in entries:
        maven = maven_infos.get(entry.artifact)
        if maven is not None and maven.artifact_id:
            by_artifact_id[maven.artifact_id].append(entry)

    duplicates: Dict[str, List[DuplicateRelation]] = {}
    for group in by_artifact_id.values():
        if len(group) < 2:
            continue
        for entry in group:
            maven = maven_infos[entry.artifact]
            relations = [
                DuplicateRelation(
                    artifact=other.artifact,
                    group_id=maven_infos[other.artifact].group_id,
                    relationship=relationship_between(maven.timestamp, maven_infos[other.artifact].timestamp),
                    timestamp=maven_infos[other.artifact].timestamp,
                )
                for other in group
                if other.artifact != entry.artifact
            ]
            if relations:
                duplicates[entry.artifact] = relations
    return duplicates
