from __future__ import annotations

from datetime import datetime
from typing import (
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
)

from pydantic import BaseModel, Field

T = TypeVar("T")


class InstallationRecord(BaseModel):
    id: int
    owner_login: str


class RepositoryRecord(BaseModel):
    id: int
    name: str


class Page(BaseModel, Generic[T]):
    items: List[T] = Field(default_factory=list)
    next_page: Optional[int] = None


class InstallationToken(BaseModel):
    token: str
    expires_at: datetime
    permissions: Dict[str, str] = Field(default_factory=dict)
    repositories: List[RepositoryRecord] = Field(default_factory=list)
    repository_selection: Optional[str] = None


class RepositoryLister(Protocol):
    async def list_repositories(
        self, page: Optional[int], per_page: int
    ) -> Page[RepositoryRecord]: ...


class AppsAPI(Protocol):
    """Remote operations available to a client authenticated as the app."""

    async def list_installations(
        self, page: Optional[int], per_page: int
    ) -> Page[InstallationRecord]: ...

    async def create_installation_token(
        self,
        installation_id: int,
        repository_ids: Sequence[int],
        permissions: Optional[Mapping[str, str]] = None,
    ) -> InstallationToken: ...


ListingClientFactory = Callable[[str], RepositoryLister]
