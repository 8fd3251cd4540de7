from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

import httpx
import jwt

from octotoken.common.settings import GitHubAppSettings

from .errors import GitHubAPIError
from .models import (
    InstallationRecord,
    InstallationToken,
    ListingClientFactory,
    Page,
    RepositoryRecord,
)

logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github+json"

T = TypeVar("T")


def _parse_github_timestamp(value: str) -> datetime:
    # GitHub returns ISO timestamps like 2021-01-01T00:00:00Z
    cleaned = value.replace("Z", "+00:00")
    return datetime.fromisoformat(cleaned).astimezone(timezone.utc)


def _next_page(response: httpx.Response) -> Optional[int]:
    """Page number of the ``rel="next"`` Link header, if there is one."""
    link = response.links.get("next")
    if not link:
        return None
    page = httpx.URL(link["url"]).params.get("page")
    return int(page) if page and page.isdigit() else None


async def _send(
    client: httpx.AsyncClient, method: str, url: str, **kwargs: Any
) -> httpx.Response:
    try:
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise GitHubAPIError(
            f"{method} {url} returned {exc.response.status_code}: {exc.response.text}",
            status_code=exc.response.status_code,
        ) from exc
    except httpx.HTTPError as exc:
        raise GitHubAPIError(f"{method} {url} failed: {exc}") from exc
    return response


def _decode(response: httpx.Response, parse: Callable[[Any], T]) -> T:
    try:
        return parse(response.json())
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        request = response.request
        raise GitHubAPIError(
            f"{request.method} {request.url.path} returned an unexpected body: {exc!r}"
        ) from exc


def _installation_records(payload: Any) -> List[InstallationRecord]:
    records: List[InstallationRecord] = []
    for item in payload:
        # Enterprise installations carry an account slug instead of a login.
        login = (item.get("account") or {}).get("login")
        if not login:
            logger.debug("Skipping installation %s without an account login", item.get("id"))
            continue
        records.append(InstallationRecord(id=item["id"], owner_login=login))
    return records


def _repository_records(payload: Any) -> List[RepositoryRecord]:
    return [RepositoryRecord(id=repo["id"], name=repo["name"]) for repo in payload]


def _installation_token(payload: Any) -> InstallationToken:
    return InstallationToken(
        token=payload["token"],
        expires_at=_parse_github_timestamp(payload["expires_at"]),
        permissions=payload.get("permissions") or {},
        repositories=_repository_records(payload.get("repositories") or []),
        repository_selection=payload.get("repository_selection"),
    )


class GitHubAppsClient:
    """GitHub Apps endpoints authenticated with the app's own JWT."""

    def __init__(self, settings: GitHubAppSettings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    def _build_app_jwt(self) -> str:
        if not self.settings.app_id:
            raise ValueError("GITHUB_APP_ID must be configured for token minting")

        now = int(time.time())
        payload = {
            "iat": now - 60,
            "exp": now + 9 * 60,
            "iss": str(self.settings.app_id),
        }
        private_key = self.settings.load_private_key_pem()
        return jwt.encode(payload, private_key, algorithm="RS256")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._build_app_jwt()}",
            "Accept": GITHUB_ACCEPT,
            "User-Agent": self.settings.user_agent,
        }

    async def list_installations(
        self, page: Optional[int], per_page: int
    ) -> Page[InstallationRecord]:
        params: Dict[str, int] = {"per_page": per_page}
        if page:
            params["page"] = page
        response = await _send(
            self.client, "GET", "/app/installations", params=params, headers=self._headers()
        )
        items = _decode(response, _installation_records)
        return Page[InstallationRecord](items=items, next_page=_next_page(response))

    async def create_installation_token(
        self,
        installation_id: int,
        repository_ids: Sequence[int],
        permissions: Optional[Mapping[str, str]] = None,
    ) -> InstallationToken:
        body: Dict[str, Any] = {}
        if repository_ids:
            body["repository_ids"] = list(repository_ids)
        if permissions:
            body["permissions"] = dict(permissions)
        logger.debug(
            "Requesting token for installation %s (%d repositories)",
            installation_id,
            len(repository_ids),
        )
        response = await _send(
            self.client,
            "POST",
            f"/app/installations/{installation_id}/access_tokens",
            json=body,
            headers=self._headers(),
        )
        return _decode(response, _installation_token)


class InstallationRepositoriesClient:
    """Lists the repositories an installation token can see."""

    def __init__(self, client: httpx.AsyncClient, token: str, user_agent: str):
        self.client = client
        self.token = token
        self.user_agent = user_agent

    async def list_repositories(
        self, page: Optional[int], per_page: int
    ) -> Page[RepositoryRecord]:
        params: Dict[str, int] = {"per_page": per_page}
        if page:
            params["page"] = page
        headers = {
            "Authorization": f"token {self.token}",
            "Accept": GITHUB_ACCEPT,
            "User-Agent": self.user_agent,
        }
        response = await _send(
            self.client, "GET", "/installation/repositories", params=params, headers=headers
        )
        items = _decode(
            response, lambda payload: _repository_records(payload.get("repositories", []))
        )
        return Page[RepositoryRecord](items=items, next_page=_next_page(response))


def repositories_client_factory(
    client: httpx.AsyncClient, settings: GitHubAppSettings
) -> ListingClientFactory:
    """Build the ``token -> lister`` factory used to refresh repository caches."""

    def factory(token: str) -> InstallationRepositoriesClient:
        return InstallationRepositoriesClient(client, token, settings.user_agent)

    return factory
