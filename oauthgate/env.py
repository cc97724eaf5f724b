from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from urllib.parse import urlparse

from dotenv import load_dotenv

from .constants import (
    DEFAULT_PENDING_TTL_SECONDS,
    DEFAULT_PROVIDER,
    ENV_FILE,
    LOGGER,
    PROPERTY_ENV_PREFIX,
)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def load_env() -> None:
    if not ENV_FILE.exists():
        return
    load_dotenv(ENV_FILE, override=True)


def load_properties(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Map ``OAUTH2_<PROVIDER>_<SETTING>`` variables to dotted property names.

    ``OAUTH2_GOOGLE_CLIENT_ID`` becomes ``oauth2.google.client_id``.
    """
    source = os.environ if environ is None else environ
    properties: dict[str, str] = {}
    for key, value in source.items():
        if not key.startswith(PROPERTY_ENV_PREFIX):
            continue
        provider, _, setting = key[len(PROPERTY_ENV_PREFIX):].partition("_")
        if not provider or not setting:
            continue
        properties[f"oauth2.{provider.lower()}.{setting.lower()}"] = value.strip()
    return properties


def provider_name() -> str:
    return os.getenv("OAUTHGATE_PROVIDER", DEFAULT_PROVIDER).strip().lower()


def validate_env() -> None:
    public_url = os.getenv("OAUTHGATE_PUBLIC_URL", "").strip()
    if not public_url:
        raise RuntimeError("Missing required environment variable: OAUTHGATE_PUBLIC_URL")

    parsed_public_url = urlparse(public_url)
    if parsed_public_url.scheme != "https" or not parsed_public_url.netloc:
        raise RuntimeError(
            "OAUTHGATE_PUBLIC_URL must be a valid public HTTPS URL (for example: "
            "https://auth.example.com)."
        )

    if not provider_name():
        raise RuntimeError("OAUTHGATE_PROVIDER must name an identity provider.")

    ttl = _get_env_int("OAUTHGATE_PENDING_TTL", DEFAULT_PENDING_TTL_SECONDS)
    if ttl <= 0:
        LOGGER.warning("OAUTHGATE_PENDING_TTL=%s would expire every sign-in immediately.", ttl)
        raise RuntimeError("OAUTHGATE_PENDING_TTL must be a positive number of seconds.")


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("OAUTHGATE_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
