"""
CatalogEntry Entity - One extension record from the registry, pre-enrichment.

Entries are loaded once per run and never mutated afterwards; everything the
enricher learns about an entry is returned alongside it instead.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MavenInfo(BaseModel):
    """Resolved Maven coordinate information for a catalog entry."""

    model_config = ConfigDict(frozen=True)

    group_id: str = Field(..., description="Maven groupId")
    artifact_id: str = Field(..., description="Maven artifactId")
    version: Optional[str] = Field(None, description="Released version")
    timestamp: Optional[int] = Field(
        None,
        description="Release timestamp in epoch milliseconds, when Maven Central knows it",
    )


class ExtensionMetadata(BaseModel):
    """
    Free-form metadata block of a catalog entry.

    Only the fields the enricher reads are declared; anything else the
    registry sends is kept as an extra field.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    # Comma-separated string whose first element is the repository URL.
    # The whole string is the foreign key of the resulting enrichment record.
    source_control: Optional[str] = Field(None, description="Source control identifier")
    icon: Optional[str] = Field(None, description="Icon URL")
    unlisted: bool = Field(default=False, description="Hidden from listings")
    categories: List[str] = Field(default_factory=list)

    @property
    def scm_url(self) -> Optional[str]:
        if not self.source_control:
            return None
        return self.source_control.split(",")[0].strip() or None


class CatalogEntry(BaseModel):
    """A package entry as published by the extension registry."""

    model_config = ConfigDict(frozen=True)

    artifact: str = Field(
        ...,
        description="Full build coordinate, e.g. io.quarkiverse.foo:quarkus-foo::jar:1.0.0",
    )
    name: str = Field(..., description="Display name")
    description: Optional[str] = None
    origins: List[str] = Field(default_factory=list)
    metadata: ExtensionMetadata = Field(default_factory=ExtensionMetadata)
