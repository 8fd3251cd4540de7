from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, List

import httpx
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from octotoken.common.settings import ServiceSettings
from octotoken.common.web import build_health_router

from .errors import InstallationNotFound, RemoteFailure
from .service import TokenService

logger = logging.getLogger(__name__)


class TokenRequest(BaseModel):
    repositories: List[str] = Field(default_factory=list)
    permissions: Dict[str, str] = Field(default_factory=dict)


def create_app(
    settings: ServiceSettings | None = None,
    token_service: TokenService | None = None,
) -> FastAPI:
    current_settings = settings or ServiceSettings(service_name="token-service")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if token_service is not None:
            app.state.token_service = token_service
            yield
            return
        client = httpx.AsyncClient(
            base_url=current_settings.github.audience,
            timeout=current_settings.github.request_timeout_seconds,
        )
        app.state.token_service = TokenService.from_settings(current_settings, client)
        try:
            yield
        finally:
            await client.aclose()

    app = FastAPI(
        title="Octotoken Token Service",
        version="0.1.0",
        description="Issues GitHub App installation tokens by owner and repository name.",
        lifespan=lifespan,
    )

    app.include_router(build_health_router(current_settings))

    def get_token_service() -> TokenService:
        return app.state.token_service  # type: ignore[no-any-return]

    @app.post("/tokens/owners/{owner}")
    async def create_installation_token(
        owner: str,
        request: TokenRequest | None = None,
        token_service: TokenService = Depends(get_token_service),
    ) -> dict:
        request = request or TokenRequest()
        try:
            token = await asyncio.wait_for(
                token_service.create_installation_token(
                    owner, request.repositories, request.permissions
                ),
                timeout=current_settings.token_request_timeout_seconds,
            )
        except InstallationNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except RemoteFailure as exc:
            raise HTTPException(
                status_code=exc.status_code or 502,
                detail=str(exc),
            ) from exc
        except asyncio.TimeoutError as exc:
            raise HTTPException(
                status_code=504, detail="timed out issuing installation token"
            ) from exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Issuing a token for %s failed", owner)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {
            "token": token.token,
            "expires_at": token.expires_at.isoformat(),
            "permissions": token.permissions,
            "repositories": [repo.name for repo in token.repositories],
        }

    return app
