from __future__ import annotations

import hashlib
import logging
import time

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from auth.errors import OAuthConfigurationError, OAuthFlowError, OAuthStateMismatchError
from auth.models import CompletedSession
from auth.provider import InternalTokenGenerator, OAuthProvider, ProviderFlowResponse
from auth.session_store import SessionStore
from auth.urls import resolve_origin, shorten_uri

logger = logging.getLogger(__name__)

DEFAULT_SESSION_COOKIE = "oauthgate_session"


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def extract_bearer_token(authorization_header: str | None) -> str | None:
    if not authorization_header:
        return None
    scheme, _, token = authorization_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class OAuthService:
    """Drives one provider on behalf of the host application.

    Pending sessions live in ``store`` keyed by temporary token until the
    provider calls back; the callback consumes the pending session exactly once
    and stores the completed session under its internal token.
    """

    def __init__(
        self,
        provider: OAuthProvider,
        store: SessionStore,
        *,
        public_url: str,
        internal_token_generator: InternalTokenGenerator = sha256_hex,
        session_cookie: str = DEFAULT_SESSION_COOKIE,
        cookie_secure: bool = True,
    ) -> None:
        self.provider = provider
        self.store = store
        self.public_url = public_url.rstrip("/")
        self.internal_token_generator = internal_token_generator
        self.session_cookie = session_cookie
        self.cookie_secure = cookie_secure

    # -- lifecycle -------------------------------------------------------------

    def resolve_origin(self, origin_uri: str | None) -> str | None:
        return resolve_origin(origin_uri or "/", self.public_url)

    async def start(self, origin_uri: str) -> ProviderFlowResponse:
        if not self.provider.is_configured():
            raise OAuthConfigurationError("provider", "OAuth provider is not configured.")

        origin = self.resolve_origin(origin_uri)
        if origin is None:
            raise OAuthFlowError(f"Origin {shorten_uri(origin_uri)!r} is not served by {self.public_url}.")

        await self.store.sweep_expired()
        response = await self.provider.start_authentication(origin)
        await self.store.add(response.session)
        return response

    async def finish(self, code: str, state: str) -> ProviderFlowResponse:
        if not self.provider.is_configured():
            raise OAuthConfigurationError("provider", "OAuth provider is not configured.")

        await self.store.sweep_expired()
        temporary_token = self.provider.resolve_state(state)
        pending = await self.store.pop_pending(temporary_token)
        if pending is None:
            raise OAuthStateMismatchError("Unknown, expired or already used OAuth state.")

        response = await self.provider.finish_authentication(
            pending, code, state, self.internal_token_generator
        )
        await self.store.add(response.session)
        return response

    async def authenticate(self, internal_token: str | None) -> CompletedSession | None:
        if not internal_token:
            return None

        session = await self.store.get(internal_token)
        if not isinstance(session, CompletedSession):
            return None
        if session.is_expired():
            await self.store.remove(internal_token)
            return None
        return session

    async def logout(self, internal_token: str | None) -> None:
        if not internal_token:
            return
        session = await self.store.get(internal_token)
        if isinstance(session, CompletedSession):
            await self.store.remove(internal_token)

    # -- routes ----------------------------------------------------------------

    def routes(self) -> list[Route]:
        return [
            Route("/oauth/login", self._handle_login, methods=["GET"]),
            Route("/oauth/callback", self._handle_callback, methods=["GET"]),
            Route("/oauth/session", self._handle_session, methods=["GET"]),
            Route("/oauth/logout", self._handle_logout, methods=["POST"]),
        ]

    # -- handlers --------------------------------------------------------------

    async def _handle_login(self, request: Request) -> Response:
        origin = self.resolve_origin(request.query_params.get("origin"))
        if origin is None:
            return self._error("invalid_request", "origin must be a URL on this site.", 400)

        try:
            result = await self.start(origin)
        except OAuthConfigurationError as error:
            return self._error("temporarily_unavailable", str(error), 503)
        except OAuthFlowError as error:
            logger.warning("OAuth start failed: %s", error)
            return self._error("flow_failed", str(error), 502)

        return RedirectResponse(url=result.redirect_uri, status_code=302, headers=result.headers)

    async def _handle_callback(self, request: Request) -> Response:
        if request.query_params.get("error"):
            description = request.query_params.get("error_description") or request.query_params["error"]
            return self._error("provider_error", f"Provider returned an error: {description}", 400)

        code = request.query_params.get("code")
        state = request.query_params.get("state")
        if not code or not state:
            return self._error("invalid_request", "Missing code or state.", 400)

        try:
            result = await self.finish(code, state)
        except OAuthConfigurationError as error:
            return self._error("temporarily_unavailable", str(error), 503)
        except OAuthStateMismatchError as error:
            return self._error("invalid_state", str(error), 400)
        except OAuthFlowError as error:
            logger.warning("OAuth callback failed: %s", error)
            return self._error("flow_failed", str(error), 502)

        session = result.session
        response = RedirectResponse(url=result.redirect_uri or self.public_url, status_code=302)
        if isinstance(session, CompletedSession):
            response.set_cookie(
                self.session_cookie,
                session.internal_token,
                max_age=max(0, session.expires_at - int(time.time())),
                httponly=True,
                secure=self.cookie_secure,
                samesite="lax",
            )
        return response

    async def _handle_session(self, request: Request) -> Response:
        session = await self.authenticate(self._request_token(request))
        if session is None:
            return self._error("unauthorized", "No authenticated session.", 401)

        return JSONResponse(
            {
                "authenticated": True,
                "user": session.user_identifier,
                "expires_at": session.expires_at,
            }
        )

    async def _handle_logout(self, request: Request) -> Response:
        await self.logout(self._request_token(request))
        response = Response(status_code=204)
        response.delete_cookie(self.session_cookie)
        return response

    # -- helpers ---------------------------------------------------------------

    def _request_token(self, request: Request) -> str | None:
        return extract_bearer_token(request.headers.get("authorization")) or request.cookies.get(
            self.session_cookie
        )

    def _error(self, code: str, description: str, status_code: int) -> Response:
        return JSONResponse(
            {"error": code, "error_description": description},
            status_code=status_code,
        )
