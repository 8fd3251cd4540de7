from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, List, Mapping, Optional

import httpx

from octotoken.common.settings import ServiceSettings

from .cache import (
    DEFAULT_REFRESH_INTERVAL,
    INSTALLATIONS_PER_PAGE,
    REPOSITORIES_PER_PAGE,
    Clock,
    Installation,
    InstallationCache,
    utcnow,
)
from .client import GitHubAppsClient, repositories_client_factory
from .errors import RemoteFailure, TokenCreationError
from .models import AppsAPI, InstallationToken, ListingClientFactory, RepositoryLister

logger = logging.getLogger(__name__)


class TokenService:
    """Issues installation tokens for an owner, optionally scoped to repositories.

    Installations and their repositories are cached for ``refresh_interval``.
    Listing an installation's repositories needs a token for that
    installation, which is minted through :meth:`mint_unscoped_token` and so
    never depends on repository resolution itself.
    """

    def __init__(
        self,
        client: AppsAPI,
        listing_client_factory: ListingClientFactory,
        refresh_interval: timedelta = DEFAULT_REFRESH_INTERVAL,
        installations_per_page: int = INSTALLATIONS_PER_PAGE,
        repositories_per_page: int = REPOSITORIES_PER_PAGE,
        clock: Clock = utcnow,
    ):
        self.client = client
        self.listing_client_factory = listing_client_factory
        self.installations = InstallationCache(
            client,
            refresh_interval=refresh_interval,
            per_page=installations_per_page,
            repositories_per_page=repositories_per_page,
            clock=clock,
        )

    @classmethod
    def from_settings(
        cls, settings: ServiceSettings, client: httpx.AsyncClient
    ) -> TokenService:
        return cls(
            GitHubAppsClient(settings.github, client),
            repositories_client_factory(client, settings.github),
            refresh_interval=settings.cache.refresh_interval,
            installations_per_page=settings.cache.installations_per_page,
            repositories_per_page=settings.cache.repositories_per_page,
        )

    async def resolve_installation_id(self, owner: str) -> int:
        installation = await self.installations.get(owner)
        return installation.id

    async def resolve_repository_id(self, owner: str, repository: str) -> int:
        installation = await self.installations.get(owner)

        async def connect() -> RepositoryLister:
            return await self._listing_client(installation)

        resolved = await installation.repositories.get(repository, connect, owner=owner)
        return resolved.id

    async def _listing_client(self, installation: Installation) -> RepositoryLister:
        token = await self.mint_unscoped_token(installation.id)
        return self.listing_client_factory(token.token)

    async def mint_unscoped_token(self, installation_id: int) -> InstallationToken:
        """Token for every repository of the installation with its full permissions."""
        return await self._mint(installation_id, [], {})

    async def create_installation_token(
        self,
        owner: str,
        repositories: Iterable[str] = (),
        permissions: Optional[Mapping[str, str]] = None,
    ) -> InstallationToken:
        installation_id = await self.resolve_installation_id(owner)
        repository_ids: List[int] = []
        for repository in repositories:
            repository_ids.append(await self.resolve_repository_id(owner, repository))
        return await self._mint(installation_id, repository_ids, permissions or {})

    async def _mint(
        self,
        installation_id: int,
        repository_ids: List[int],
        permissions: Mapping[str, str],
    ) -> InstallationToken:
        try:
            token = await self.client.create_installation_token(
                installation_id, repository_ids, dict(permissions)
            )
        except RemoteFailure as exc:
            raise TokenCreationError(
                f"failed to create token: {exc}", status_code=exc.status_code
            ) from exc
        logger.debug(
            "Minted token for installation %s scoped to %s",
            installation_id,
            repository_ids or "all repositories",
        )
        return token
