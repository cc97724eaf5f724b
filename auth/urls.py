from __future__ import annotations

import urllib.parse

LOG_URI_LIMIT = 64


def shorten_uri(uri: str) -> str:
    if len(uri) < LOG_URI_LIMIT:
        return uri
    return uri[:LOG_URI_LIMIT] + "..."


def resolve_origin(uri: str, public_url: str) -> str | None:
    """Return ``uri`` as an absolute URL on the public host, or ``None``.

    Relative paths are joined onto ``public_url``. Absolute URLs must share the
    public URL's scheme and host so the callback can never bounce a user to a
    foreign site.
    """
    if not uri:
        return None

    public = urllib.parse.urlparse(public_url)
    parsed = urllib.parse.urlparse(uri)

    if not parsed.scheme and not parsed.netloc:
        if not uri.startswith("/") or uri.startswith("//"):
            return None
        return urllib.parse.urlunparse(public._replace(path=parsed.path, query=parsed.query, fragment=""))

    if parsed.scheme != public.scheme:
        return None
    if parsed.netloc.lower() != public.netloc.lower():
        return None
    return uri


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))
