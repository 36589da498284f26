"""
Application configuration
"""
from pydantic_settings import BaseSettings
from typing import Literal, Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "SCM Enricher"
    APP_VERSION: str = "1.0.0"

    # GitHub
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_GRAPHQL_URL: str = "https://api.github.com/graphql"
    GITHUB_RAW_URL: str = "https://raw.githubusercontent.com"
    GITHUB_MAX_CONCURRENCY: int = 8
    GITHUB_MAX_RETRIES: int = 3
    GITHUB_TIMEOUT_SECONDS: float = 30.0
    GITHUB_BACKOFF_SECONDS: float = 1.0

    # Extension registry and Maven Central
    REGISTRY_URL: str = "https://registry.quarkus.io"
    MAVEN_SEARCH_URL: str = "https://search.maven.org/solrsearch/select"

    # Cache persistence
    CACHE_BACKEND: Literal["file", "redis"] = "file"
    CACHE_DIR: str = ".cache/scm-enricher"
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "scm_enricher:cache"

    # Cache lifetimes; locations rarely move, and a link checker catches the ones that do
    IMAGE_CACHE_TTL_DAYS: float = 3
    METADATA_PATH_CACHE_TTL_DAYS: float = 10
    ISSUE_COUNT_CACHE_TTL_DAYS: float = 1

    # The only repository whose bot config maps extensions to issue labels
    LABELLED_REPOSITORY_OWNER: str = "quarkusio"
    LABELLED_REPOSITORY_NAME: str = "quarkus"
    BOT_CONFIG_PATH: str = ".github/quarkus-github-bot.yml"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
