from __future__ import annotations

import contextlib
import os

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from auth.registry import ProviderRegistry, default_registry
from auth.service import OAuthService
from auth.session_store import MemorySessionStore

from .constants import APP_VERSION, DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_PENDING_TTL_SECONDS, LOGGER
from .env import _get_env_int, load_env, load_properties, provider_name, setup_logging, validate_env
from .http import build_http_client


def build_health_route(service: OAuthService) -> Route:
    async def health_route(request: Request) -> Response:
        del request
        return JSONResponse(
            {
                "status": "ok",
                "version": APP_VERSION,
                "provider": service.provider.name,
                "configured": service.provider.is_configured(),
            }
        )

    return Route("/health", health_route, methods=["GET"])


def create_app(registry: ProviderRegistry | None = None) -> Starlette:
    load_env()
    debug_enabled = setup_logging()
    validate_env()

    public_url = os.getenv("OAUTHGATE_PUBLIC_URL", "").strip().rstrip("/")
    name = provider_name()
    timeout = float(_get_env_int("OAUTHGATE_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT_SECONDS))
    max_retries = _get_env_int("OAUTHGATE_HTTP_MAX_RETRIES", 2)
    pending_ttl = _get_env_int("OAUTHGATE_PENDING_TTL", DEFAULT_PENDING_TTL_SECONDS)

    http_client = build_http_client(
        timeout=timeout,
        max_retries=max_retries,
        debug_enabled=debug_enabled,
    )
    provider = (registry or default_registry()).build(
        name,
        load_properties(),
        redirect_uri=f"{public_url}/oauth/callback",
        http_client=http_client,
        pending_lifetime_seconds=pending_ttl,
    )
    service = OAuthService(provider, MemorySessionStore(), public_url=public_url)
    LOGGER.info("OAuth provider %s ready for %s", name, public_url)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        del app
        try:
            yield
        finally:
            await http_client.aclose()

    app = Starlette(
        routes=[*service.routes(), build_health_route(service)],
        lifespan=lifespan,
    )
    app.state.oauth_service = service
    return app
