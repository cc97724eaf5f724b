from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Callable

from auth.models import PendingSession, Session

InternalTokenGenerator = Callable[[str], str]


@dataclass(frozen=True)
class ProviderFlowResponse:
    """What a provider hands back from either end of a flow.

    ``redirect_uri`` points at the consent page after a start and at the
    original resource after a finish.
    """

    session: Session
    redirect_uri: str | None
    headers: dict[str, str] = field(default_factory=dict)


class OAuthProvider(ABC):
    """Contract every identity provider implements to plug into the session lifecycle.

    Setup methods return the provider so calls can be chained::

        provider.setup_credentials(cid, secret).setup_redirect_uri(uri).setup_properties(props)
        provider.configure()

    Flow methods must only be called once ``is_configured()`` is true.
    """

    name: str = ""

    @abstractmethod
    def setup_credentials(self, client_id: str, client_secret: str) -> "OAuthProvider":
        raise NotImplementedError

    @abstractmethod
    def setup_redirect_uri(self, redirect_uri: str) -> "OAuthProvider":
        raise NotImplementedError

    @abstractmethod
    def setup_properties(self, properties: Mapping[str, str]) -> "OAuthProvider":
        raise NotImplementedError

    @abstractmethod
    def configure(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def is_configured(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def start_authentication(self, origin_uri: str) -> ProviderFlowResponse:
        raise NotImplementedError

    @abstractmethod
    async def finish_authentication(
        self,
        pending: PendingSession,
        code: str,
        state: str,
        internal_token_generator: InternalTokenGenerator,
    ) -> ProviderFlowResponse:
        raise NotImplementedError

    @abstractmethod
    def resolve_state(self, state: str) -> str:
        """Return the temporary token a callback ``state`` was issued for.

        Raises :class:`OAuthStateMismatchError` when ``state`` was not issued
        by this provider.
        """
        raise NotImplementedError
