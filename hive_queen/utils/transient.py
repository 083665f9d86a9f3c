"""Shared transient-error classification.

One predicate answers "is this error worth retrying?" for both the
interactive command path and the scheduled reconciliation jobs, so the two
never disagree about what counts as transient. Nothing in here retries; it
only classifies.

Recognised as transient:
    - Network-level failures (connection reset/refused, timeouts, DNS
      lookup failures, broken pipes), whether raised as ``OSError``
      subclasses, ``httpx`` transport errors, or objects carrying one of the
      conventional string codes in ``.code``
    - HTTP 429 and any HTTP 5xx
    - HTTP 403 caused by rate limiting rather than a permission denial,
      identified through ``x-ratelimit-remaining: 0``, a ``retry-after``
      header, or "rate limit" in the error message

Example:
    >>> from hive_queen.utils.transient import is_transient_error
    >>> try:
    ...     await tracker.add_labels(42, ["hivemoot:voting"])
    ... except GithubException as e:
    ...     if not is_transient_error(e):
    ...         raise
"""

from __future__ import annotations

import errno
import socket
from collections.abc import Mapping
from typing import Any

import httpx
from github import GithubException  # type: ignore[import-not-found]

TRANSIENT_NETWORK_CODES = frozenset(
    {
        "ECONNRESET",
        "ETIMEDOUT",
        "ECONNREFUSED",
        "ENOTFOUND",
        "EAI_AGAIN",
        "EPIPE",
    }
)

_TRANSIENT_ERRNOS = frozenset(
    {
        errno.ECONNRESET,
        errno.ETIMEDOUT,
        errno.ECONNREFUSED,
        errno.EPIPE,
    }
)

_TRANSIENT_GAI_ERRORS = frozenset(
    code for code in (getattr(socket, "EAI_AGAIN", None), getattr(socket, "EAI_NONAME", None)) if code is not None
)


def get_error_status(error: BaseException | Any) -> int | None:
    """Extract an HTTP status code from an error of unknown shape."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code

    status = getattr(error, "status", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int) and not isinstance(status_code, bool):
        return status_code

    return None


def _get_headers(error: BaseException | Any) -> Mapping[str, Any]:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.headers

    headers = getattr(error, "headers", None)
    if isinstance(headers, Mapping):
        return headers

    response = getattr(error, "response", None)
    response_headers = getattr(response, "headers", None)
    if isinstance(response_headers, Mapping):
        return response_headers

    return {}


def get_header_value(headers: Mapping[str, Any], name: str) -> str | None:
    """Look up a response header case-insensitively."""
    target = name.lower()
    for key, value in headers.items():
        if str(key).lower() == target and value is not None:
            return str(value)
    return None


def _get_message(error: BaseException | Any) -> str:
    if isinstance(error, GithubException):
        data = error.data
        if isinstance(data, Mapping) and data.get("message"):
            return str(data["message"])
    message = getattr(error, "message", None)
    if isinstance(message, str):
        return message
    return str(error)


def is_rate_limit_error(error: BaseException | Any) -> bool:
    """Return True when a 403/429 comes from rate limiting, not a permission denial."""
    status = get_error_status(error)
    if status not in (403, 429):
        return False

    headers = _get_headers(error)
    remaining = get_header_value(headers, "x-ratelimit-remaining")
    retry_after = get_header_value(headers, "retry-after")
    if remaining == "0" or retry_after:
        return True

    return "rate limit" in _get_message(error).lower()


def _is_network_error(error: BaseException | Any) -> bool:
    if isinstance(error, httpx.TransportError):
        return True

    if isinstance(error, socket.gaierror):
        return error.errno in _TRANSIENT_GAI_ERRORS

    if isinstance(error, (ConnectionError, TimeoutError)):
        return True

    if isinstance(error, OSError) and error.errno in _TRANSIENT_ERRNOS:
        return True

    code = getattr(error, "code", None)
    return isinstance(code, str) and code in TRANSIENT_NETWORK_CODES


def is_transient_error(error: BaseException | Any) -> bool:
    """Return True when the error represents a transient failure worth retrying.

    Args:
        error: Any raised exception, or an object carrying ``status``/``code``

    Returns:
        True for network failures, HTTP 429, HTTP 5xx and rate-limited 403s
    """
    if _is_network_error(error):
        return True

    status = get_error_status(error)
    if status is not None and (status == 429 or status >= 500):
        return True

    return is_rate_limit_error(error)
