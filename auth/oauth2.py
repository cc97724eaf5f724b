from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Mapping
from dataclasses import dataclass

import httpx
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from auth import signed_token
from auth.errors import OAuthConfigurationError, OAuthFlowError, OAuthStateMismatchError
from auth.models import CompletedSession, PendingSession
from auth.provider import InternalTokenGenerator, OAuthProvider, ProviderFlowResponse
from auth.urls import append_query_params, shorten_uri
from oauthgate.http import describe_error_response

logger = logging.getLogger(__name__)

DEFAULT_PENDING_LIFETIME_SECONDS = 600
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600
START_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}

_HTTP_URL = TypeAdapter(AnyHttpUrl)


@dataclass(frozen=True)
class ProviderEndpoints:
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str


@dataclass
class TokenResponse:
    access_token: str
    expires_in: int
    token_type: str = "Bearer"
    scope: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenResponse":
        if not isinstance(payload, dict):
            raise OAuthFlowError("Token response must be a JSON object.")

        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in", DEFAULT_TOKEN_LIFETIME_SECONDS)
        token_type = payload.get("token_type", "Bearer")
        scope = payload.get("scope", "")

        if not isinstance(access_token, str) or not access_token:
            raise OAuthFlowError("Token response missing access_token.")
        # Some providers send expires_in as a numeric string.
        if isinstance(expires_in, str) and expires_in.isdigit():
            expires_in = int(expires_in)
        if isinstance(expires_in, bool) or not isinstance(expires_in, int):
            raise OAuthFlowError("Token response expires_in must be an integer.")
        if expires_in < 0:
            raise OAuthFlowError("Token response expires_in must not be negative.")
        if not isinstance(scope, str):
            raise OAuthFlowError("Token response scope must be a string.")

        return cls(
            access_token=access_token,
            expires_in=expires_in,
            token_type=token_type if isinstance(token_type, str) else "Bearer",
            scope=scope,
        )


def build_authorization_url(
    authorization_endpoint: str,
    *,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    extra_params: Mapping[str, str] | None = None,
) -> str:
    query = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
    }
    if extra_params:
        query.update(extra_params)
    return append_query_params(authorization_endpoint, query)


def _get_json(response: httpx.Response, what: str) -> dict:
    try:
        payload = response.json()
    except ValueError as error:
        raise OAuthFlowError(f"{what} response is not valid JSON.") from error
    if not isinstance(payload, dict):
        raise OAuthFlowError(f"{what} response must be a JSON object.")
    return payload


async def request_json(
    method: str,
    url: str,
    what: str,
    *,
    client: httpx.AsyncClient | None = None,
    **kwargs,
) -> dict:
    """Perform one provider call and decode its JSON object body.

    Transport failures, error statuses and malformed bodies all surface as
    :class:`OAuthFlowError`; httpx exception types never escape.
    """
    own_client = client is None
    http_client = client or httpx.AsyncClient()

    try:
        response = await http_client.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as error:
        raise OAuthFlowError(
            f"{what} request failed: {describe_error_response(error.response)}"
        ) from error
    except httpx.HTTPError as error:
        raise OAuthFlowError(f"{what} request failed: {error}") from error
    finally:
        if own_client:
            await http_client.aclose()

    return _get_json(response, what)


async def exchange_code(
    token_endpoint: str,
    *,
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    payload = await request_json(
        "POST",
        token_endpoint,
        "Token",
        client=client,
        data={
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
        },
        headers={"Accept": "application/json"},
    )
    return TokenResponse.from_payload(payload)


async def fetch_user_identifier(
    userinfo_endpoint: str,
    access_token: str,
    identity_field: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> str:
    payload = await request_json(
        "GET",
        userinfo_endpoint,
        "User info",
        client=client,
        headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
    )
    identifier = payload.get(identity_field)
    if isinstance(identifier, bool) or not isinstance(identifier, (str, int)) or identifier == "":
        raise OAuthFlowError(f"User info response missing {identity_field}.")
    return str(identifier)


class AuthorizationCodeProvider(OAuthProvider):
    """Authorization-code flow shared by every OAuth2 provider.

    Subclasses declare the provider endpoints (or override :meth:`endpoints`),
    the property holding the scope and the user-info field that identifies the
    user. The ``state`` handed to the provider is the pending session's
    temporary token signed with a key derived from the client secret, so a
    callback can be matched back to its pending session without trusting the
    user agent.
    """

    authorization_endpoint: str = ""
    token_endpoint: str = ""
    userinfo_endpoint: str = ""
    scope_property: str = ""
    identity_field: str = "id"
    extra_authorization_params: Mapping[str, str] = {}

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        pending_lifetime_seconds: int = DEFAULT_PENDING_LIFETIME_SECONDS,
    ) -> None:
        self.client_id: str | None = None
        self.client_secret: str | None = None
        self.redirect_uri: str | None = None
        self.properties: dict[str, str] = {}
        self.pending_lifetime_seconds = pending_lifetime_seconds

        self._http_client = http_client
        self._state_key: str | None = None
        self._configured = False

    # -- configuration ---------------------------------------------------------

    @property
    def required_properties(self) -> tuple[str, ...]:
        return (self.scope_property,)

    def url_settings(self) -> dict[str, str | None]:
        return {"redirect_uri": self.redirect_uri}

    @property
    def scope(self) -> str | None:
        return self.properties.get(self.scope_property)

    def setup_credentials(self, client_id: str, client_secret: str) -> "AuthorizationCodeProvider":
        self.client_id = client_id
        self.client_secret = client_secret
        self._configured = False
        return self

    def setup_redirect_uri(self, redirect_uri: str) -> "AuthorizationCodeProvider":
        self.redirect_uri = redirect_uri
        self._configured = False
        return self

    def setup_properties(self, properties: Mapping[str, str]) -> "AuthorizationCodeProvider":
        values: dict[str, str] = {}
        for key in self.required_properties:
            value = properties.get(key)
            if not isinstance(value, str) or not value.strip():
                raise OAuthConfigurationError(key)
            values[key] = value.strip()

        self.properties = values
        self._configured = False
        return self

    def configure(self) -> None:
        self._configured = False

        settings = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
        }
        for key in self.required_properties:
            settings[key] = self.properties.get(key)
        for key, value in settings.items():
            if not value:
                raise OAuthConfigurationError(key)

        for setting, value in self.url_settings().items():
            self._validate_url(setting, value)
        self._state_key = signed_token.derive_key(self.client_secret)

        logger.debug("%s is now configured.", type(self).__name__)
        self._configured = True

    def is_configured(self) -> bool:
        return self._configured

    @staticmethod
    def _validate_url(setting: str, value: str | None) -> None:
        try:
            _HTTP_URL.validate_python(value)
        except ValidationError as error:
            raise OAuthConfigurationError(
                setting, f"OAuth setting {setting} must be an http(s) URL: {value!r}"
            ) from error

    def _require_configured(self) -> None:
        if not self._configured:
            raise OAuthFlowError(f"{type(self).__name__} is not configured.")

    # -- flow ------------------------------------------------------------------

    async def endpoints(self) -> ProviderEndpoints:
        return ProviderEndpoints(
            authorization_endpoint=self.authorization_endpoint,
            token_endpoint=self.token_endpoint,
            userinfo_endpoint=self.userinfo_endpoint,
        )

    def issue_state(self, temporary_token: str) -> str:
        return signed_token.encode({"tmp": temporary_token}, self._state_key)

    def resolve_state(self, state: str) -> str:
        self._require_configured()
        try:
            payload = signed_token.decode(state, self._state_key)
        except ValueError as error:
            raise OAuthStateMismatchError(f"Invalid OAuth state parameter: {error}") from error

        temporary_token = payload.get("tmp")
        if not isinstance(temporary_token, str) or not temporary_token:
            raise OAuthStateMismatchError("OAuth state parameter carries no session.")
        return temporary_token

    async def start_authentication(self, origin_uri: str) -> ProviderFlowResponse:
        self._require_configured()
        logger.debug("Start authentication from '%s'.", shorten_uri(origin_uri))

        endpoints = await self.endpoints()
        temporary_token = secrets.token_urlsafe(32)
        state = self.issue_state(temporary_token)
        try:
            redirect_uri = build_authorization_url(
                endpoints.authorization_endpoint,
                client_id=self.client_id,
                redirect_uri=self.redirect_uri,
                scope=self.scope,
                state=state,
                extra_params=self.extra_authorization_params,
            )
        except (TypeError, ValueError) as error:
            raise OAuthFlowError(f"Could not build authorization request: {error}") from error

        pending = PendingSession.create(
            origin_uri,
            self.pending_lifetime_seconds,
            state=state,
            temporary_token=temporary_token,
        )
        logger.debug("Redirect user to '%s'.", shorten_uri(redirect_uri))
        return ProviderFlowResponse(
            session=pending,
            redirect_uri=redirect_uri,
            headers=dict(START_HEADERS),
        )

    async def finish_authentication(
        self,
        pending: PendingSession,
        code: str,
        state: str,
        internal_token_generator: InternalTokenGenerator,
    ) -> ProviderFlowResponse:
        self._require_configured()
        logger.debug("Finish authentication from '%s'.", shorten_uri(pending.origin_uri))

        if pending.is_expired():
            raise OAuthFlowError("Authentication flow expired; restart sign-in.")
        if not state or not hmac.compare_digest(state.encode(), pending.state.encode()):
            raise OAuthStateMismatchError()
        if not code:
            raise OAuthFlowError("Missing authorization code.")

        endpoints = await self.endpoints()
        token = await exchange_code(
            endpoints.token_endpoint,
            client_id=self.client_id,
            client_secret=self.client_secret,
            code=code,
            redirect_uri=self.redirect_uri,
            client=self._http_client,
        )
        user_identifier = await fetch_user_identifier(
            endpoints.userinfo_endpoint,
            token.access_token,
            self.identity_field,
            client=self._http_client,
        )

        try:
            internal_token = internal_token_generator(token.access_token)
        except Exception as error:
            raise OAuthFlowError(f"Could not derive internal token: {error}") from error
        if not isinstance(internal_token, str) or not internal_token:
            raise OAuthFlowError("Internal token generator returned an empty token.")

        completed = CompletedSession.create(
            internal_token=internal_token,
            access_token=token.access_token,
            user_identifier=user_identifier,
            origin_uri=pending.origin_uri,
            expires_in=token.expires_in,
        )
        logger.info("User '%s' authenticated with %s.", user_identifier, self.name or type(self).__name__)
        return ProviderFlowResponse(session=completed, redirect_uri=pending.origin_uri)
