from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from .errors import GitHubAPIError, InstallationNotFound, RemoteFailure
from .models import AppsAPI, Page, RepositoryLister

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = timedelta(minutes=1)
INSTALLATIONS_PER_PAGE = 10
REPOSITORIES_PER_PAGE = 100

T = TypeVar("T")
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


async def _collect_pages(
    fetch: Callable[[Optional[int], int], Awaitable[Page[T]]], per_page: int
) -> List[T]:
    """Follow ``next_page`` until the remote stops returning one."""
    items: List[T] = []
    page: Optional[int] = None
    while True:
        result = await fetch(page, per_page)
        items.extend(result.items)
        if not result.next_page:
            return items
        if result.next_page <= (page or 1):
            raise GitHubAPIError(
                f"pagination did not advance past page {page or 1} (next page {result.next_page})"
            )
        page = result.next_page


class _Freshness:
    def __init__(self, refresh_interval: timedelta, clock: Clock):
        self.refresh_interval = refresh_interval
        self.clock = clock
        self.updated_at: Optional[datetime] = None

    def is_fresh(self) -> bool:
        if self.updated_at is None:
            return False
        return self.updated_at + self.refresh_interval > self.clock()


@dataclass(frozen=True)
class Repository:
    id: int
    name: str


class RepositoryCache(_Freshness):
    """Repositories visible to a single installation."""

    def __init__(
        self,
        owner: str,
        refresh_interval: timedelta = DEFAULT_REFRESH_INTERVAL,
        per_page: int = REPOSITORIES_PER_PAGE,
        clock: Clock = utcnow,
    ):
        super().__init__(refresh_interval, clock)
        self.owner = owner
        self.per_page = per_page
        self.repositories: Tuple[Repository, ...] = ()
        self._lock = asyncio.Lock()

    def find(self, name: str) -> Optional[Repository]:
        for repository in self.repositories:
            if repository.name == name:
                return repository
        return None

    async def refresh(self, connect: Callable[[], Awaitable[RepositoryLister]]) -> None:
        async with self._lock:
            if self.is_fresh():
                logger.debug("Repository cache for %s is fresh", self.owner)
                return
            try:
                lister = await connect()
                records = await _collect_pages(lister.list_repositories, self.per_page)
            except RemoteFailure as exc:
                logger.warning("Refreshing repositories for %s failed: %s", self.owner, exc)
                raise
            repositories = tuple(Repository(id=r.id, name=r.name) for r in records)
            self.repositories, self.updated_at = repositories, self.clock()
            logger.info("Cached %d repositories for %s", len(repositories), self.owner)

    async def get(
        self,
        name: str,
        connect: Callable[[], Awaitable[RepositoryLister]],
        owner: Optional[str] = None,
    ) -> Repository:
        """``owner`` is the caller's spelling, used only in the not-found error."""
        await self.refresh(connect)
        repository = self.find(name)
        if repository is None:
            raise InstallationNotFound(f"{owner or self.owner}/{name}")
        return repository


@dataclass
class Installation:
    id: int
    owner: str
    repositories: RepositoryCache = field(repr=False, compare=False)


class InstallationCache(_Freshness):
    """Installations of the app keyed by lower-cased owner login."""

    def __init__(
        self,
        client: AppsAPI,
        refresh_interval: timedelta = DEFAULT_REFRESH_INTERVAL,
        per_page: int = INSTALLATIONS_PER_PAGE,
        repositories_per_page: int = REPOSITORIES_PER_PAGE,
        clock: Clock = utcnow,
    ):
        super().__init__(refresh_interval, clock)
        self.client = client
        self.per_page = per_page
        self.repositories_per_page = repositories_per_page
        self._installations: Dict[str, Installation] = {}
        self._lock = asyncio.Lock()

    @property
    def installations(self) -> Tuple[Installation, ...]:
        return tuple(self._installations.values())

    def _new_installation(self, installation_id: int, owner: str) -> Installation:
        return Installation(
            id=installation_id,
            owner=owner,
            repositories=RepositoryCache(
                owner,
                refresh_interval=self.refresh_interval,
                per_page=self.repositories_per_page,
                clock=self.clock,
            ),
        )

    async def refresh(self) -> None:
        async with self._lock:
            if self.is_fresh():
                logger.debug("Installation cache is fresh")
                return
            try:
                records = await _collect_pages(self.client.list_installations, self.per_page)
            except RemoteFailure as exc:
                logger.warning("Refreshing installations failed: %s", exc)
                raise
            installations: Dict[str, Installation] = {}
            for record in records:
                owner = record.owner_login.lower()
                if owner not in installations:
                    installations[owner] = self._new_installation(record.id, owner)
            self._installations, self.updated_at = installations, self.clock()
            logger.info("Cached %d installations", len(installations))

    async def get(self, owner: str) -> Installation:
        key = owner.lower()
        await self.refresh()
        installation = self._installations.get(key)
        if installation is None:
            raise InstallationNotFound(owner)
        return installation
