"""Page fetching with SSRF protection, bounded redirects and hard timeouts."""
from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from ipaddress import ip_address
from urllib.parse import urljoin, urlparse

import requests

from site_audit.config.settings import settings

logger = logging.getLogger(__name__)


class ResponseTooLargeError(Exception):
    """Raised internally when a body exceeds the configured size cap."""


@dataclass
class FetchResult:
    """Outcome of fetching one URL.

    A fetch never raises. Network-level failures (DNS, refused connection,
    timeout, SSRF refusal, oversized body) carry ``status_code == 0`` and an
    ``error``; non-2xx responses carry the real status code, the body and an
    ``error`` of the form ``"HTTP 404"``. ``ssl_relaxed`` is set when the
    body was fetched without certificate verification.
    """
    url: str
    final_url: str
    html: str = ""
    status_code: int = 0
    elapsed_ms: int = 0
    last_modified: str | None = None
    content_type: str = ""
    redirects: list[str] = field(default_factory=list)
    error: str | None = None
    ssl_relaxed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status_code < 300

    @property
    def network_error(self) -> bool:
        """True when no HTTP response was obtained at all."""
        return self.status_code == 0


def _is_url(source: str) -> bool:
    parsed = urlparse(source)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _validate_ip(ip_str: str) -> tuple[bool, str]:
    """Check if an IP address is safe (not private/internal)."""
    try:
        ip = ip_address(ip_str)
        if ip.is_private or ip.is_loopback or ip.is_reserved or ip.is_link_local:
            return False, f"Access to private/internal IP addresses is forbidden: {ip_str}"
        return True, ""
    except ValueError:
        return False, f"Invalid IP address: {ip_str}"


def _resolve_and_validate_url(url: str) -> tuple[str, str, str]:
    """
    Resolve URL hostname to IP and validate it's safe.
    Returns (resolved_ip, hostname, error_message).
    """
    try:
        parsed = urlparse(url)

        if parsed.scheme not in {"http", "https"}:
            return "", "", "Only http and https schemes are allowed"

        hostname = parsed.hostname
        if not hostname:
            return "", "", "Invalid URL: hostname not found"

        try:
            resolved_ip = socket.gethostbyname(hostname)
        except socket.gaierror:
            return "", "", f"Could not resolve hostname: {hostname}"

        is_safe, error_msg = _validate_ip(resolved_ip)
        if not is_safe:
            return "", "", error_msg

        return resolved_ip, hostname, ""
    except ValueError as e:
        return "", "", f"URL validation error: {str(e)}"


def _parse_last_modified(header: str | None) -> str | None:
    if not header:
        return None
    try:
        return parsedate_to_datetime(header).isoformat()
    except (TypeError, ValueError):
        return None


def _read_body(response: requests.Response, max_size: int) -> str:
    """Read a streamed body, enforcing the size cap with or without Content-Length."""
    content_length = response.headers.get("Content-Length")
    if content_length and content_length.isdigit() and int(content_length) > max_size:
        raise ResponseTooLargeError(
            f"Response too large: {int(content_length)} bytes (max {max_size})"
        )

    chunks = []
    total_size = 0
    for chunk in response.iter_content(chunk_size=8192, decode_unicode=False):
        total_size += len(chunk)
        if total_size > max_size:
            raise ResponseTooLargeError(f"Response too large: exceeded {max_size} bytes")
        chunks.append(chunk)

    content_bytes = b"".join(chunks)
    encoding = response.encoding or "utf-8"
    try:
        return content_bytes.decode(encoding)
    except (UnicodeDecodeError, LookupError):
        return content_bytes.decode("utf-8", errors="replace")


def fetch_page(
    url: str,
    *,
    timeout: float | None = None,
    session: requests.Session | None = None,
    relaxed_ssl: bool = False,
) -> FetchResult:
    """
    Fetch a page and describe the outcome as a FetchResult.

    - Only http and https URLs are fetched
    - Every hop is validated against private/internal addresses (unless disabled)
    - Redirects are followed manually up to ``max_redirects`` hops
    - Each request carries its own timeout, independent of any batch budget
    - Bodies are streamed and capped at ``max_response_size``
    - A certificate error is retried once without verification; with
      ``relaxed_ssl`` verification is skipped from the first request
    """
    cfg = settings.fetcher
    timeout = cfg.request_timeout if timeout is None else timeout
    http = session or requests
    headers = {"User-Agent": cfg.user_agent}
    started = time.perf_counter()
    result = FetchResult(url=url, final_url=url, ssl_relaxed=relaxed_ssl)

    def _finish(error: str | None = None) -> FetchResult:
        result.elapsed_ms = int(round((time.perf_counter() - started) * 1000))
        result.error = error
        if error and result.status_code == 0:
            logger.debug("Fetch failed for %s: %s", url, error)
        return result

    if not _is_url(url):
        return _finish("Only http and https URLs are allowed")

    current = url
    response = None
    try:
        while True:
            if not cfg.allow_private_addresses:
                _, _, ssrf_error = _resolve_and_validate_url(current)
                if ssrf_error:
                    result.final_url = current
                    return _finish(f"SSRF protection: {ssrf_error}")

            try:
                response = http.get(
                    current,
                    headers=headers,
                    timeout=timeout,
                    allow_redirects=False,
                    stream=True,
                    verify=not result.ssl_relaxed,
                )
            except requests.exceptions.SSLError as e:
                if result.ssl_relaxed:
                    raise
                logger.warning(
                    "SSL error for %s, retrying with relaxed verification: %s", current, e
                )
                result.ssl_relaxed = True
                continue

            location = response.headers.get("Location", "")
            if not (response.is_redirect and location):
                break

            response.close()
            if len(result.redirects) >= cfg.max_redirects:
                result.final_url = current
                return _finish(f"Too many redirects (max {cfg.max_redirects})")

            current = urljoin(current, location)
            if not _is_url(current):
                return _finish(f"Redirect to unsupported URL: {current}")
            result.redirects.append(current)

        result.final_url = current
        result.content_type = response.headers.get("Content-Type", "")
        result.last_modified = _parse_last_modified(response.headers.get("Last-Modified"))
        result.html = _read_body(response, cfg.max_response_size)
        result.status_code = response.status_code
    except requests.Timeout:
        return _finish(f"Request timed out after {timeout:g}s")
    except requests.RequestException as e:
        return _finish(f"Request failed: {type(e).__name__}: {str(e)}")
    except ResponseTooLargeError as e:
        return _finish(str(e))
    finally:
        if response is not None:
            response.close()

    if not 200 <= result.status_code < 300:
        return _finish(f"HTTP {result.status_code}")
    return _finish()
