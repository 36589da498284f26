"""
EnrichmentRecord Entity - Denormalized source control metadata for one entry.

A record is created once per run by the orchestrator and handed to the
rendering layer unchanged. It links back to its catalog entry through `key`,
the entry's raw source control string.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RepoCoordinates(BaseModel):
    """Owner and name of a GitHub repository."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str


class MetadataLocation(BaseModel):
    """Where an extension's quarkus-extension.yaml lives in its repository."""

    model_config = ConfigDict(frozen=True)

    extension_yaml_url: str
    extension_path_in_repo: str = Field(
        ...,
        description="Path of the extension root inside the repository; empty for the repository root",
    )
    extension_root_url: str


class ContributorInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    login: str
    name: Optional[str] = None
    contributions: int = 0
    url: Optional[str] = None


class DuplicateRelationship(str, Enum):
    """How a duplicate relates to the entry that lists it."""

    NEWER = "newer"
    OLDER = "older"
    DIFFERENT = "different"


class DuplicateRelation(BaseModel):
    """Another catalog entry with the same artifactId but a different coordinate."""

    model_config = ConfigDict(frozen=True)

    artifact: str = Field(..., description="Full coordinate of the duplicate")
    group_id: Optional[str] = None
    relationship: DuplicateRelationship
    timestamp: Optional[int] = None


class EnrichmentRecord(BaseModel):
    """Source control information for one catalog entry."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Foreign key back to the catalog entry")
    url: str

    # Everything below is only available for GitHub repositories, and even
    # then any of it may be missing for this run
    project: Optional[str] = None
    owner: Optional[str] = None
    issues_url: Optional[str] = None
    issue_count: Optional[int] = None
    labels: Optional[List[str]] = None
    owner_image_url: Optional[str] = None
    social_image: Optional[str] = None
    metadata_location: Optional[MetadataLocation] = None
    sponsors: List[str] = Field(default_factory=list)
    contributors: List[ContributorInfo] = Field(default_factory=list)


class EnrichmentRun(BaseModel):
    """Everything one enrichment run produced."""

    records: List[EnrichmentRecord] = Field(default_factory=list)
    duplicates: Dict[str, List[DuplicateRelation]] = Field(
        default_factory=dict,
        description="Duplicate relations keyed by the artifact coordinate of the entry carrying them",
    )
