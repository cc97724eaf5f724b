from __future__ import annotations

import logging
from collections.abc import Mapping

from auth.errors import OAuthFlowError
from auth.oauth2 import AuthorizationCodeProvider, ProviderEndpoints, request_json

logger = logging.getLogger(__name__)

OIDC_DISCOVERY_PROPERTY = "oauth2.oidc.discovery_url"
OIDC_SCOPE_PROPERTY = "oauth2.oidc.scope"
DISCOVERY_FIELDS = ("authorization_endpoint", "token_endpoint", "userinfo_endpoint")


class OIDCProvider(AuthorizationCodeProvider):
    """Any OpenID Connect issuer, located through its discovery document.

    The document (usually ``<issuer>/.well-known/openid-configuration``) is
    fetched on the first flow call and kept for the life of the provider.
    """

    name = "oidc"
    scope_property = OIDC_SCOPE_PROPERTY
    identity_field = "sub"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._discovered: ProviderEndpoints | None = None

    @property
    def required_properties(self) -> tuple[str, ...]:
        return (OIDC_DISCOVERY_PROPERTY, self.scope_property)

    @property
    def discovery_url(self) -> str | None:
        return self.properties.get(OIDC_DISCOVERY_PROPERTY)

    def setup_properties(self, properties: Mapping[str, str]) -> "OIDCProvider":
        super().setup_properties(properties)
        self._discovered = None
        return self

    def url_settings(self) -> dict[str, str | None]:
        return {**super().url_settings(), OIDC_DISCOVERY_PROPERTY: self.discovery_url}

    async def endpoints(self) -> ProviderEndpoints:
        if self._discovered is not None:
            return self._discovered

        document = await request_json(
            "GET",
            self.discovery_url,
            "OpenID discovery",
            client=self._http_client,
            headers={"Accept": "application/json"},
        )
        missing = [
            field
            for field in DISCOVERY_FIELDS
            if not isinstance(document.get(field), str) or not document[field]
        ]
        if missing:
            raise OAuthFlowError(
                f"OpenID discovery document is missing: {', '.join(missing)}"
            )

        self._discovered = ProviderEndpoints(
            authorization_endpoint=document["authorization_endpoint"],
            token_endpoint=document["token_endpoint"],
            userinfo_endpoint=document["userinfo_endpoint"],
        )
        logger.debug("Discovered OpenID endpoints from '%s'.", self.discovery_url)
        return self._discovered
