"""
Typed views over the GitHub GraphQL responses the enricher reads.

Every field GitHub may leave out (rate limiting, missing repositories, paths
that do not exist) is Optional, so callers handle absence explicitly instead
of digging through nested dicts.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from scm_enricher.services.github.exceptions import GithubResponseError

M = TypeVar("M", bound=BaseModel)


class _GraphQLModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TreeEntry(_GraphQLModel):
    name: Optional[str] = None
    path: Optional[str] = None
    type: Optional[str] = None
    object: Optional["Tree"] = None


class Tree(_GraphQLModel):
    """A git tree; `entries` is None when the expression did not resolve to a tree."""

    entries: Optional[List[TreeEntry]] = None


TreeEntry.model_rebuild()


class Ref(_GraphQLModel):
    name: Optional[str] = None


class IssueConnection(_GraphQLModel):
    total_count: Optional[int] = Field(None, alias="totalCount")


class IssueCountRepository(_GraphQLModel):
    issues: Optional[IssueConnection] = None


class ImageRepository(_GraphQLModel):
    open_graph_image_url: Optional[str] = Field(None, alias="openGraphImageUrl")


class RepositoryOwner(_GraphQLModel):
    avatar_url: Optional[str] = Field(None, alias="avatarUrl")


class ImageData(_GraphQLModel):
    repository: Optional[ImageRepository] = None
    repository_owner: Optional[RepositoryOwner] = Field(None, alias="repositoryOwner")


class IssueCountData(_GraphQLModel):
    repository: Optional[IssueCountRepository] = None


class ListingRepository(_GraphQLModel):
    object: Optional[Tree] = None


class ListingData(_GraphQLModel):
    repository: Optional[ListingRepository] = None


def response_data(body: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """The `data` member of a GraphQL body, or an empty dict."""
    if not body:
        return {}
    data = body.get("data")
    return data if isinstance(data, dict) else {}


def parse_response(model: Type[M], payload: Any, what: str) -> M:
    """
    Validate a response fragment against its view.

    Raises:
        GithubResponseError: payload does not have the expected shape
    """
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise GithubResponseError(f"Malformed {what} response: {e.error_count()} invalid field(s)") from e
