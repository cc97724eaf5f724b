from __future__ import annotations

import logging
from pathlib import Path

LOGGER = logging.getLogger("oauthgate")
APP_VERSION = "0.1.0"

PROPERTY_ENV_PREFIX = "OAUTH2_"
DEFAULT_PROVIDER = "google"
DEFAULT_PENDING_TTL_SECONDS = 600
DEFAULT_HTTP_TIMEOUT_SECONDS = 30

ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
