from __future__ import annotations

import asyncio
import logging

import httpx

from .constants import DEFAULT_HTTP_TIMEOUT_SECONDS, LOGGER

# Token exchanges are POSTs carrying a single-use code and must never be replayed.
IDEMPOTENT_METHODS = {"GET", "HEAD", "OPTIONS"}


class RetryTransport(httpx.AsyncBaseTransport):
    """Retries idempotent provider calls (discovery, user info) on 5xx."""

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 2,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._max_retries = max(0, max_retries)
        self._sleep = sleep
        self._logger = logger or LOGGER

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        retries = 0

        while True:
            response = await self._transport.handle_async_request(request)

            if request.method not in IDEMPOTENT_METHODS:
                return response

            if 500 <= response.status_code < 600 and retries < self._max_retries:
                backoff_seconds = 2**retries
                self._logger.warning(
                    "Retrying %s after %ss (%s %s)",
                    response.status_code,
                    backoff_seconds,
                    request.method,
                    request.url,
                )
                await response.aclose()
                await self._sleep(backoff_seconds)
                retries += 1
                continue

            return response

    async def aclose(self) -> None:
        await self._transport.aclose()


def _friendly_error_message(status_code: int) -> str:
    if status_code == 400:
        return "The identity provider rejected the request."
    if status_code == 401:
        return "The identity provider rejected the client credentials or token."
    if status_code == 403:
        return "The identity provider denied access."
    if status_code == 404:
        return "The identity provider endpoint was not found."
    if status_code == 429:
        return "The identity provider is rate limiting requests."
    if status_code >= 500:
        return "The identity provider is experiencing issues. Please try again later."
    return f"Identity provider request failed with status {status_code}."


def describe_error_response(response: httpx.Response) -> str:
    """Readable one-line summary of a failed provider response.

    OAuth2 error bodies (``{"error": ..., "error_description": ...}``) are
    folded into the message; anything else is truncated raw text.
    """
    message = _friendly_error_message(response.status_code)
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict) and payload.get("error"):
        detail = str(payload["error"])
        if payload.get("error_description"):
            detail = f"{detail}: {payload['error_description']}"
    else:
        detail = response.text.strip()
        if len(detail) > 200:
            detail = detail[:200] + "...<truncated>"

    if not detail:
        return f"{message} (status {response.status_code})"
    return f"{message} (status {response.status_code}: {detail})"


def build_http_client(
    *,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    max_retries: int = 2,
    debug_enabled: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    async def log_request(request: httpx.Request) -> None:
        if not debug_enabled:
            return
        LOGGER.info("Provider request %s %s", request.method, request.url)

    async def log_response(response: httpx.Response) -> None:
        if not debug_enabled:
            return
        LOGGER.info(
            "Provider response %s %s -> %s",
            response.request.method,
            response.request.url,
            response.status_code,
        )

    retry_transport = RetryTransport(
        transport or httpx.AsyncHTTPTransport(),
        max_retries=max_retries,
        logger=LOGGER,
    )
    return httpx.AsyncClient(
        timeout=timeout,
        transport=retry_transport,
        event_hooks={"request": [log_request], "response": [log_response]},
    )
