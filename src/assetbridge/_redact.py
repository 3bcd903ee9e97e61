"""Keep the asset API key out of debug logs and error messages.

The tracking API takes its credential as the ``api_key`` query parameter,
so it appears in the request parameters and in any URL aiohttp echoes back
in an exception.
"""

from __future__ import annotations

from collections.abc import Mapping

REDACTED = "<redacted>"

_SECRET_PARAMS: frozenset[str] = frozenset({"api_key", "apikey"})


def redact_params(params: Mapping[str, str]) -> dict[str, str]:
    """Copy of *params* with credential values masked."""
    return {key: REDACTED if key.lower() in _SECRET_PARAMS else value for key, value in params.items()}


def scrub_secrets(text: str, params: Mapping[str, str]) -> str:
    """Replace every credential value from *params* that occurs in *text*."""
    for key, value in params.items():
        if key.lower() in _SECRET_PARAMS and value:
            text = text.replace(value, REDACTED)
    return text
