from __future__ import annotations


class OAuthError(RuntimeError):
    pass


class OAuthConfigurationError(OAuthError):
    """A provider setting is missing or malformed."""

    def __init__(self, setting: str, message: str | None = None) -> None:
        super().__init__(message or f"Missing or invalid OAuth setting: {setting}")
        self.setting = setting


class OAuthFlowError(OAuthError):
    """Starting or finishing an authentication flow failed."""


class OAuthStateMismatchError(OAuthFlowError):
    def __init__(self, message: str = "OAuth state parameter does not match.") -> None:
        super().__init__(message)
