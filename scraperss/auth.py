"""Extraction of API keys from request headers."""

from __future__ import annotations

from collections.abc import Mapping

_FORMAT_MESSAGE = (
    "Incorrect format of authorization value. Correct format is 'ApiKey {value}'."
)


class AuthError(ValueError):
    """Raised when a request carries no usable API key."""


def get_api_key(headers: Mapping[str, str]) -> str:
    """Return the key from an ``Authorization: ApiKey <key>`` header."""
    authz = next(
        (value for key, value in headers.items() if key.lower() == "authorization"),
        "",
    )
    if not authz:
        raise AuthError("Authorization header is empty.")
    parts = authz.split(" ")
    if len(parts) != 2 or parts[0] != "ApiKey":
        raise AuthError(_FORMAT_MESSAGE)
    return parts[1]