from __future__ import annotations

import ipaddress
import os
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

import requests

DEFAULT_TIMEOUT_SECONDS = 30.0


class OutboundDomainError(RuntimeError):
    """Raised when a URL violates the configured outbound domain allow-list."""


def _parse_allowlist(spec: str | None = None) -> set[str]:
    raw = spec if spec is not None else os.getenv("OUTBOUND_ALLOWLIST", "")
    return {item.strip().lower() for item in raw.split(",") if item.strip()}


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def check_outbound_url(url: str, allowlist: Iterable[str] | None = None) -> str:
    """Validate ``url`` against the allow-list and return its host.

    An explicit ``allowlist`` overrides ``OUTBOUND_ALLOWLIST``. An empty list
    allows every host; subdomains match their parent entry, IPs must be
    listed verbatim.
    """
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"Unsupported URL scheme: {parsed.scheme!r}")

    host = (parsed.hostname or "").lower()
    allowed = (
        {item.strip().lower() for item in allowlist if item.strip()}
        if allowlist is not None
        else _parse_allowlist()
    )
    if not allowed:
        return host

    if _is_ip(host):
        permitted = host in allowed
    else:
        permitted = any(host == entry or host.endswith(f".{entry}") for entry in allowed)
    if not permitted:
        raise OutboundDomainError(
            f"Host '{host}' is not permitted (allowed: {', '.join(sorted(allowed))})"
        )
    return host


def safe_request(
    method: str,
    url: str,
    *,
    allowlist: Iterable[str] | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    **kwargs: Any,
) -> requests.Response:
    """Single outbound request: allow-listed host, bounded timeout, no redirects."""
    check_outbound_url(url, allowlist)
    if kwargs.pop("allow_redirects", False):
        raise ValueError(
            "safe_request does not allow automatic redirects; handle redirects manually."
        )
    return requests.request(
        method.upper(),
        url,
        headers=headers,
        timeout=timeout,
        allow_redirects=False,
        **kwargs,
    )


def safe_post_json(
    url: str,
    payload: Mapping[str, Any],
    *,
    allowlist: Iterable[str] | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> requests.Response:
    return safe_request(
        "POST", url, allowlist=allowlist, headers=headers, timeout=timeout, json=payload
    )


__all__ = [
    "OutboundDomainError",
    "check_outbound_url",
    "safe_post_json",
    "safe_request",
]
