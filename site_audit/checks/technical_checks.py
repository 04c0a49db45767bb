"""Technical checks: viewport, mixed content, TLS certificate."""
from __future__ import annotations

import re
import socket
import ssl
import time
from typing import Any
from urllib.parse import urlsplit

from site_audit.checks.base import (
    BaseCheck,
    CheckCategory,
    CheckContext,
    CheckOutcome,
    CheckPriority,
    CheckScope,
)

CERT_EXPIRY_WARNING_DAYS = 30
TLS_TIMEOUT = 10.0

# OpenSSL verify codes for self-signed certificates
_SELF_SIGNED_CODES = {18, 19}

_RESOURCE_ATTRIBUTES = (
    ("img", "src", "image"),
    ("script", "src", "script"),
    ("link", "href", "stylesheet"),
    ("iframe", "src", "iframe"),
    ("video", "src", "video"),
    ("audio", "src", "audio"),
    ("source", "src", "media source"),
    ("object", "data", "object"),
    ("embed", "src", "embed"),
)

_STYLE_URL = re.compile(r"url\s*\(\s*['\"]?(http://[^'\")]+)['\"]?\s*\)", re.IGNORECASE)


class MissingViewportCheck(BaseCheck):
    name = "missing_viewport"
    display_name = "Missing Viewport Meta Tag"
    display_name_passed = "Viewport Meta Tag"
    description = "Pages should declare a viewport for mobile rendering"
    category = CheckCategory.TECHNICAL
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.PAGE
    learn_more_url = (
        "https://developers.google.com/search/docs/crawling-indexing/mobile/"
        "mobile-sites-mobile-first-indexing#viewport"
    )

    def run(self, context: CheckContext) -> CheckOutcome:
        meta = context.soup.find("meta", attrs={"name": lambda v: v and v.lower() == "viewport"})
        if meta is None or not (meta.get("content") or "").strip():
            return CheckOutcome.warning(
                "No viewport meta tag. Mobile browsers will render the page at desktop width."
            )
        return CheckOutcome.passed("Viewport meta tag is set", content=meta["content"].strip())


class MixedContentCheck(BaseCheck):
    name = "mixed_content"
    display_name = "Mixed Content"
    display_name_passed = "Secure Resources"
    description = "HTTPS pages should not load resources over HTTP"
    category = CheckCategory.TECHNICAL
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.PAGE
    learn_more_url = "https://web.dev/articles/what-is-mixed-content"

    def run(self, context: CheckContext) -> CheckOutcome:
        if not context.is_https:
            return CheckOutcome.passed("Page is served over HTTP; mixed content does not apply")

        insecure: list[dict[str, str]] = []
        for tag, attr, kind in _RESOURCE_ATTRIBUTES:
            for element in context.soup.find_all(tag, attrs={attr: True}):
                value = element[attr].strip()
                if value.lower().startswith("http://"):
                    insecure.append({"type": kind, "url": value})

        for element in context.soup.find_all(style=True):
            for match in _STYLE_URL.finditer(element["style"]):
                insecure.append({"type": "inline style", "url": match.group(1)})

        if insecure:
            counts: dict[str, int] = {}
            for resource in insecure:
                counts[resource["type"]] = counts.get(resource["type"], 0) + 1
            summary = ", ".join(f"{count} {kind}" for kind, count in counts.items())
            return CheckOutcome.failed(
                f"{len(insecure)} insecure HTTP resource(s) on HTTPS page ({summary}). "
                "Update URLs to HTTPS to prevent blocked content.",
                count=len(insecure),
                resources=insecure[:5],
            )
        return CheckOutcome.passed("All resources loaded securely over HTTPS")


def _certificate_info(hostname: str, port: int = 443, timeout: float = TLS_TIMEOUT) -> dict[str, Any]:
    """Open a verified TLS connection and describe the peer certificate.

    Returns:
        Dictionary with ``valid`` and either ``days_until_expiry``/``issuer``
        or ``error``/``self_signed``
    """
    context = ssl.create_default_context()
    try:
        with socket.create_connection((hostname, port), timeout=timeout) as sock:
            with context.wrap_socket(sock, server_hostname=hostname) as tls:
                cert = tls.getpeercert()
    except ssl.SSLCertVerificationError as e:
        return {
            "valid": False,
            "error": e.verify_message or str(e),
            "self_signed": e.verify_code in _SELF_SIGNED_CODES,
        }
    except (ssl.SSLError, OSError) as e:
        return {"valid": False, "error": str(e), "self_signed": False}

    expires_at = ssl.cert_time_to_seconds(cert["notAfter"])
    issuer = dict(item[0] for item in cert.get("issuer", ()))
    return {
        "valid": True,
        "days_until_expiry": int((expires_at - time.time()) // 86400),
        "issuer": issuer.get("organizationName") or issuer.get("commonName") or "Unknown",
    }


class InvalidSslCertificateCheck(BaseCheck):
    name = "invalid_ssl_certificate"
    display_name = "Invalid SSL Certificate"
    display_name_passed = "Valid SSL Certificate"
    description = "SSL certificate should be valid, trusted and not about to expire"
    category = CheckCategory.TECHNICAL
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = "https://developers.google.com/search/docs/fundamentals/security"

    def run(self, context: CheckContext) -> CheckOutcome:
        parts = urlsplit(context.url)
        if parts.scheme != "https":
            return CheckOutcome.passed("Site is served over HTTP; no certificate to verify")

        info = _certificate_info(parts.hostname or "", parts.port or 443)
        if not info["valid"]:
            if info.get("self_signed"):
                return CheckOutcome.failed(
                    "SSL certificate is self-signed and will not be trusted by browsers.",
                    error=info["error"],
                )
            return CheckOutcome.failed(
                f"SSL certificate could not be verified: {info['error']}",
                error=info["error"],
            )

        days = info["days_until_expiry"]
        if days <= 0:
            return CheckOutcome.failed("SSL certificate has expired.", days_until_expiry=days)
        if days <= CERT_EXPIRY_WARNING_DAYS:
            return CheckOutcome.warning(
                f"SSL certificate expires in {days} day(s). Renew it soon.",
                days_until_expiry=days,
                issuer=info["issuer"],
            )
        return CheckOutcome.passed(
            f"SSL certificate is valid for {days} more days",
            days_until_expiry=days,
            issuer=info["issuer"],
        )


TECHNICAL_CHECKS: tuple[type[BaseCheck], ...] = (
    MissingViewportCheck,
    MixedContentCheck,
    InvalidSslCertificateCheck,
)
