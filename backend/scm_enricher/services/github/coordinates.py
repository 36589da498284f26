"""Parse repository coordinates out of GitHub URLs."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlparse

from scm_enricher.entities import RepoCoordinates

GITHUB_HOST = "github.com"

_SCP_LIKE = re.compile(r"^git@(?P<host>[^:]+):(?P<path>.+)$")


def is_github_url(url: Optional[str]) -> bool:
    if not url:
        return False
    match = _SCP_LIKE.match(url)
    host = match.group("host") if match else urlparse(url).hostname
    return bool(host) and (host == GITHUB_HOST or host.endswith("." + GITHUB_HOST))


def parse_github_url(url: Optional[str]) -> Optional[RepoCoordinates]:
    """
    Extract (owner, name) from a GitHub repository URL.

    Accepts https URLs (with or without a trailing .git, or deeper paths such
    as /tree/main/foo) and scp-like git@github.com:owner/name.git addresses.
    Returns None for anything that is not a GitHub repository URL.
    """
    if not is_github_url(url):
        return None

    match = _SCP_LIKE.match(url)
    path = match.group("path") if match else urlparse(url).path

    parts = [part for part in path.split("/") if part]
    if len(parts) < 2:
        return None

    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        return None
    return RepoCoordinates(owner=owner, name=name)
