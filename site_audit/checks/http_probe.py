"""Small HTTP helpers for checks that probe the audited site."""
from __future__ import annotations

import logging
from urllib.parse import urljoin

import requests

from site_audit.config.settings import settings
from site_audit.fetcher.page_fetcher import _resolve_and_validate_url

logger = logging.getLogger(__name__)


class ProbeRefusedError(requests.RequestException):
    """Raised when a probe target resolves to a forbidden address."""


def _headers() -> dict[str, str]:
    return {"User-Agent": settings.fetcher.user_agent}


def _guard(url: str) -> None:
    if settings.fetcher.allow_private_addresses:
        return
    _, _, error = _resolve_and_validate_url(url)
    if error:
        raise ProbeRefusedError(error)


def head(
    url: str,
    *,
    allow_redirects: bool = True,
    timeout: float | None = None,
) -> requests.Response:
    """Send a HEAD request with the audit user agent.

    Raises:
        requests.RequestException: On network failure or a refused target
    """
    _guard(url)
    return requests.head(
        url,
        headers=_headers(),
        allow_redirects=allow_redirects,
        timeout=timeout or settings.batch.probe_timeout,
    )


def get(
    url: str,
    *,
    allow_redirects: bool = True,
    timeout: float | None = None,
) -> requests.Response:
    """Send a GET request with the audit user agent.

    Raises:
        requests.RequestException: On network failure or a refused target
    """
    _guard(url)
    return requests.get(
        url,
        headers=_headers(),
        allow_redirects=allow_redirects,
        timeout=timeout or settings.batch.probe_timeout,
    )


def exists(url: str) -> bool:
    """True when a HEAD request to the URL answers 2xx."""
    try:
        return head(url).ok
    except requests.RequestException as e:
        logger.debug("Probe of %s failed: %s", url, e)
        return False


def fetch_text(url: str) -> str | None:
    """GET a text resource, returning None when it is unavailable."""
    try:
        response = get(url)
    except requests.RequestException as e:
        logger.debug("Probe of %s failed: %s", url, e)
        return None
    if not response.ok:
        return None
    return response.text


def site_url(origin: str, path: str) -> str:
    return urljoin(origin + "/", path.lstrip("/"))
