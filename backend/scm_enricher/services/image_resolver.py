"""
Image Resolver - owner avatar and customized social preview per repository.

GitHub always reports a social preview image. Unless the owner uploaded one,
it is generated on opengraph.githubassets.com and shows the owner avatar with
some text, which we do not want. Uploaded previews live on
repository-images.githubusercontent.com:

    default:    https://opengraph.githubassets.com/3096.../quarkiverse/quarkus-openfga-client
    customized: https://repository-images.githubusercontent.com/437045322/39ad4dec-...
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel

from scm_enricher.cache.persistable_cache import PersistableCache
from scm_enricher.entities import RepoCoordinates
from scm_enricher.services.github.exceptions import GithubResponseError
from scm_enricher.services.github.graphql_client import GithubGraphQLClient
from scm_enricher.services.github.responses import ImageData, parse_response, response_data

logger = logging.getLogger(__name__)

CUSTOMIZED_PREVIEW_HOST_MARKER = "githubusercontent"

IMAGES_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    openGraphImageUrl
  }
  repositoryOwner(login: $owner) {
    avatarUrl
  }
}
"""


class ImageInformation(BaseModel):
    owner_image_url: Optional[str] = None
    social_image: Optional[str] = None


def is_customized_social_preview(url: Optional[str]) -> bool:
    if not url:
        return False
    host = urlparse(url).hostname or ""
    return CUSTOMIZED_PREVIEW_HOST_MARKER in host


class ImageResolver:
    def __init__(self, client: GithubGraphQLClient, cache: PersistableCache):
        self.client = client
        self.cache = cache

    async def get_image_information(self, coords: RepoCoordinates, scm_url: str) -> ImageInformation:
        cached = await self.cache.get_or_set(scm_url, lambda: self._get_image_information_no_cache(coords))
        return ImageInformation.model_validate(cached)

    async def _get_image_information_no_cache(self, coords: RepoCoordinates) -> dict:
        body = await self.client.query(IMAGES_QUERY, {"owner": coords.owner, "name": coords.name})
        data = parse_response(ImageData, response_data(body), f"images of {coords.owner}/{coords.name}")

        if data.repository is None:
            raise GithubResponseError(f"No repository data for {coords.owner}/{coords.name} images")

        if data.repository_owner is None or not data.repository_owner.avatar_url:
            raise GithubResponseError(f"No owner avatar for {coords.owner}/{coords.name}")

        open_graph_image_url = data.repository.open_graph_image_url
        social_image = open_graph_image_url if is_customized_social_preview(open_graph_image_url) else None
        owner_image_url = data.repository_owner.avatar_url

        return ImageInformation(owner_image_url=owner_image_url, social_image=social_image).model_dump()
