"""Shared fakes for the token service tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from octotoken.token.models import (
    InstallationRecord,
    InstallationToken,
    Page,
    RepositoryRecord,
)
from octotoken.token.service import TokenService


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def _page(pages: list, failures: Dict[int, Exception], page: Optional[int]) -> Page:
    number = page or 1
    if number in failures:
        raise failures[number]
    next_page = number + 1 if number < len(pages) else None
    return Page(items=list(pages[number - 1]), next_page=next_page)


class FakeAppsClient:
    """In-memory stand-in for the app-authenticated GitHub client."""

    def __init__(self, installations: List[List[InstallationRecord]]):
        self.installation_pages = installations
        self.failures: Dict[int, Exception] = {}
        self.token_error: Optional[Exception] = None
        self.delay = 0.0
        self.list_calls: List[tuple] = []
        self.token_requests: List[tuple] = []

    async def list_installations(self, page, per_page):
        self.list_calls.append((page, per_page))
        await asyncio.sleep(self.delay)
        return _page(self.installation_pages, self.failures, page)

    async def create_installation_token(self, installation_id, repository_ids, permissions=None):
        self.token_requests.append(
            (installation_id, list(repository_ids), dict(permissions or {}))
        )
        await asyncio.sleep(0)
        if self.token_error is not None:
            raise self.token_error
        return InstallationToken(
            token=f"token-{len(self.token_requests)}",
            expires_at=datetime(2024, 1, 1, 1, tzinfo=timezone.utc),
            permissions=dict(permissions or {}),
        )


class FakeListingFactory:
    """Builds listers over a fixed set of repository pages and records tokens."""

    def __init__(self, repositories: List[List[RepositoryRecord]]):
        self.repository_pages = repositories
        self.failures: Dict[int, Exception] = {}
        self.tokens: List[str] = []
        self.list_calls: List[tuple] = []

    def __call__(self, token: str) -> "FakeLister":
        self.tokens.append(token)
        return FakeLister(self)


class FakeLister:
    def __init__(self, factory: FakeListingFactory):
        self.factory = factory

    async def list_repositories(self, page, per_page):
        self.factory.list_calls.append((page, per_page))
        await asyncio.sleep(0)
        return _page(self.factory.repository_pages, self.factory.failures, page)


def installation(id: int, owner: str) -> InstallationRecord:
    return InstallationRecord(id=id, owner_login=owner)


def repository(id: int, name: str) -> RepositoryRecord:
    return RepositoryRecord(id=id, name=name)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def apps():
    return FakeAppsClient([[installation(42, "Acme"), installation(43, "Other")]])


@pytest.fixture
def listing():
    return FakeListingFactory(
        [[repository(1, "repoA"), repository(2, "repoB"), repository(3, "repoC")]]
    )


@pytest.fixture
def service(apps, listing, clock):
    return TokenService(apps, listing, clock=clock)
