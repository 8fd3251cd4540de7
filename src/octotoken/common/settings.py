from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Optional

from pydantic import Field, HttpUrl, computed_field
from pydantic_settings import BaseSettings


class GitHubAppSettings(BaseSettings):
    api_base_url: HttpUrl = Field(
        "https://api.github.com", alias="GITHUB_API_BASE_URL"
    )
    app_id: Optional[int] = Field(default=None, alias="GITHUB_APP_ID")
    private_key: Optional[str] = Field(default=None, alias="GITHUB_APP_PRIVATE_KEY")
    private_key_path: Optional[Path] = Field(
        default=None, alias="GITHUB_APP_PRIVATE_KEY_PATH"
    )
    user_agent: str = Field("octotoken-token-service")
    request_timeout_seconds: float = Field(10.0, ge=0.1)

    model_config = {
        "env_prefix": "OCTOTOKEN_",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @computed_field
    def audience(self) -> str:
        return str(self.api_base_url).rstrip("/")

    def load_private_key_pem(self) -> str:
        if self.private_key:
            return self.private_key
        if self.private_key_path:
            return self.private_key_path.read_text()
        raise ValueError("GitHub App private key not configured")


class CacheSettings(BaseSettings):
    refresh_interval_seconds: float = Field(
        60.0,
        gt=0,
        description="Seconds before cached installations or repositories are refetched",
    )
    installations_per_page: int = Field(10, ge=1, le=100)
    repositories_per_page: int = Field(100, ge=1, le=100)

    model_config = {
        "env_prefix": "OCTOTOKEN_",
        "extra": "ignore",
    }

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(seconds=self.refresh_interval_seconds)


class ServiceSettings(BaseSettings):
    service_name: str = Field("octotoken-service", alias="SERVICE_NAME")
    environment: str = Field("dev", alias="ENVIRONMENT")
    github: GitHubAppSettings = Field(default_factory=GitHubAppSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    healthcheck_timeout_seconds: float = Field(5.0, ge=1.0)
    token_request_timeout_seconds: float = Field(
        30.0,
        gt=0,
        description="Overall deadline for resolving and minting one token",
    )

    model_config = {
        "env_prefix": "OCTOTOKEN_",
        "extra": "ignore",
        "populate_by_name": True,
    }
