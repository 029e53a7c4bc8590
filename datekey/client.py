"""
Client helper: attach a fresh credential and fetch the disclosed keys.
"""

from datetime import datetime, tzinfo
from typing import Any, Dict, Optional

import requests

from .encoder import Scheme, encode
from .errors import DatekeyError
from .gate import DEFAULT_HEADER

DEFAULT_TIMEOUT = 10


class KeyFetchError(DatekeyError):
    """The server refused the request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def secure_headers(
    secret: str,
    scheme: Scheme = Scheme.PHRASE,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    header_name: str = DEFAULT_HEADER
) -> Dict[str, str]:
    """Headers carrying a credential computed for ``now``."""
    return {
        header_name: encode(secret, now, scheme, tz),
        "Content-Type": "application/json",
    }


def fetch_api_keys(
    server_url: str,
    secret: str,
    scheme: Scheme = Scheme.PHRASE,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT
) -> Dict[str, Any]:
    """
    Call ``GET /api/get-keys`` and return the ``keys`` mapping.

    Raises:
        KeyFetchError: On a non-2xx response (carrying the server's message)
            or a transport error, or when a 2xx reply carries no keys object
    """
    http = session or requests.Session()
    url = server_url.rstrip("/") + "/api/get-keys"
    try:
        response = http.get(url, headers=secure_headers(secret, scheme), timeout=timeout)
    except requests.RequestException as e:
        raise KeyFetchError(f"Failed to reach {url}: {e}") from e

    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = {}

    if not response.ok:
        raise KeyFetchError(body.get("message") or "Failed to fetch API keys", response.status_code)

    keys = body.get("keys")
    if not isinstance(keys, dict):
        raise KeyFetchError("Server reply carried no keys object", response.status_code)
    return keys
