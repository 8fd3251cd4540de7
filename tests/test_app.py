from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from octotoken.common.settings import GitHubAppSettings, ServiceSettings
from octotoken.token.app import create_app
from octotoken.token.client import GitHubAppsClient
from octotoken.token.errors import GitHubAPIError
from octotoken.token.service import TokenService


@pytest.fixture
def settings():
    return ServiceSettings(service_name="token-service", token_request_timeout_seconds=0.5)


@pytest.fixture
def client(settings, service):
    with TestClient(create_app(settings, token_service=service)) as test_client:
        yield test_client


def test_issue_scoped_token(client, apps):
    response = client.post(
        "/tokens/owners/Acme",
        json={"repositories": ["repoB"], "permissions": {"contents": "read"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["token"] == "token-2"
    assert body["permissions"] == {"contents": "read"}
    assert body["expires_at"].startswith("2024-01-01T01:00:00")
    assert apps.token_requests[-1] == (42, [2], {"contents": "read"})


def test_issue_token_without_body(client, apps):
    response = client.post("/tokens/owners/other")

    assert response.status_code == 200
    assert apps.token_requests == [(43, [], {})]


def test_unknown_repository_is_404(client):
    response = client.post("/tokens/owners/acme", json={"repositories": ["ghost"]})

    assert response.status_code == 404
    assert response.json()["detail"] == "installation not found: 'acme/ghost'"


def test_upstream_status_is_forwarded(client, apps):
    apps.token_error = GitHubAPIError("POST returned 422: invalid", status_code=422)

    response = client.post("/tokens/owners/acme")

    assert response.status_code == 422
    assert response.json()["detail"].startswith("failed to create token:")


def test_transport_failure_is_502(client, apps):
    apps.failures[1] = GitHubAPIError("GET /app/installations failed: connection refused")

    response = client.post("/tokens/owners/acme")

    assert response.status_code == 502


def test_slow_upstream_times_out(client, apps):
    apps.delay = 2.0

    response = client.post("/tokens/owners/acme")

    assert response.status_code == 504


def test_missing_app_id_is_json_500(settings, listing, monkeypatch):
    monkeypatch.delenv("GITHUB_APP_ID", raising=False)

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("request should not be sent")

    http = httpx.AsyncClient(
        base_url="https://api.github.com", transport=httpx.MockTransport(handler)
    )
    apps = GitHubAppsClient(GitHubAppSettings(private_key="pem"), http)
    service = TokenService(apps, listing)

    with TestClient(create_app(settings, token_service=service)) as test_client:
        response = test_client.post("/tokens/owners/acme")

    assert response.status_code == 500
    assert response.json()["detail"] == "GITHUB_APP_ID must be configured for token minting"
