from __future__ import annotations

import time
from typing import List

import httpx
from pydantic import BaseModel

from .settings import ServiceSettings


class HealthStatus(BaseModel):
    name: str
    healthy: bool
    latency_ms: float | None = None
    detail: str | None = None


class HealthReport(BaseModel):
    service: str
    environment: str
    healthy: bool
    checks: List[HealthStatus]


class HealthChecker:
    def __init__(
        self,
        settings: ServiceSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.transport = transport

    def check_github_app(self) -> HealthStatus:
        try:
            self.settings.github.load_private_key_pem()
        except (OSError, ValueError) as exc:
            return HealthStatus(name="github_app", healthy=False, detail=str(exc))
        if not self.settings.github.app_id:
            return HealthStatus(
                name="github_app", healthy=False, detail="GITHUB_APP_ID is not configured"
            )
        return HealthStatus(name="github_app", healthy=True)

    async def check_github(self) -> HealthStatus:
        start = time.perf_counter()
        async with httpx.AsyncClient(
            timeout=self.settings.healthcheck_timeout_seconds,
            transport=self.transport,
        ) as client:
            try:
                response = await client.get(
                    f"{self.settings.github.audience}/meta",
                    headers={"Accept": "application/vnd.github+json"},
                )
                latency = (time.perf_counter() - start) * 1000
                healthy = response.status_code < 400
                detail = None if healthy else f"GitHub meta returned {response.status_code}"
                return HealthStatus(
                    name="github_api",
                    healthy=healthy,
                    latency_ms=latency,
                    detail=detail,
                )
            except Exception as exc:  # noqa: BLE001
                latency = (time.perf_counter() - start) * 1000
                return HealthStatus(
                    name="github_api",
                    healthy=False,
                    latency_ms=latency,
                    detail=str(exc),
                )

    async def run(self) -> HealthReport:
        statuses: list[HealthStatus] = [
            self.check_github_app(),
            await self.check_github(),
        ]
        healthy = all(status.healthy for status in statuses)
        return HealthReport(
            service=self.settings.service_name,
            environment=self.settings.environment,
            healthy=healthy,
            checks=statuses,
        )
