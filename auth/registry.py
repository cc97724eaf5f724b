from __future__ import annotations

from collections.abc import Mapping
from typing import Callable

from auth.errors import OAuthConfigurationError
from auth.google import GoogleProvider
from auth.oidc import OIDCProvider
from auth.provider import OAuthProvider

ProviderFactory = Callable[..., OAuthProvider]


class ProviderRegistry:
    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        self._factories[name.lower()] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def create(self, name: str, **kwargs) -> OAuthProvider:
        factory = self._factories.get(name.lower())
        if factory is None:
            known = ", ".join(self.names()) or "none"
            raise OAuthConfigurationError(
                "provider", f"Unknown OAuth provider {name!r} (known: {known})."
            )
        return factory(**kwargs)

    def build(
        self,
        name: str,
        properties: Mapping[str, str],
        *,
        redirect_uri: str | None = None,
        **kwargs,
    ) -> OAuthProvider:
        """Create, set up and configure the provider ``name`` from properties.

        Credentials come from ``oauth2.<name>.client_id`` and
        ``oauth2.<name>.client_secret``; the callback from
        ``oauth2.<name>.redirect_uri`` unless ``redirect_uri`` is given.
        """
        provider = self.create(name, **kwargs)
        prefix = f"oauth2.{name.lower()}"

        client_id = _require(properties, f"{prefix}.client_id")
        client_secret = _require(properties, f"{prefix}.client_secret")
        callback = properties.get(f"{prefix}.redirect_uri") or redirect_uri
        if not callback:
            raise OAuthConfigurationError(f"{prefix}.redirect_uri")

        provider.setup_credentials(client_id, client_secret).setup_redirect_uri(
            callback
        ).setup_properties(properties)
        provider.configure()
        return provider


def _require(properties: Mapping[str, str], key: str) -> str:
    value = properties.get(key)
    if not isinstance(value, str) or not value.strip():
        raise OAuthConfigurationError(key)
    return value.strip()


def default_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(GoogleProvider.name, GoogleProvider)
    registry.register(OIDCProvider.name, OIDCProvider)
    return registry
