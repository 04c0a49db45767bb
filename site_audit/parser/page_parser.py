"""Markup parsing helpers: link extraction, URL normalization and page metadata."""
from __future__ import annotations

from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

# Extensions that are recorded as pages but never parsed for links
RESOURCE_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "pdf": (".pdf",),
    "document": (".doc", ".docx", ".odt", ".rtf"),
    "spreadsheet": (".xls", ".xlsx", ".ods", ".csv"),
    "presentation": (".ppt", ".pptx", ".odp"),
    "archive": (".zip", ".rar", ".tar", ".gz", ".7z"),
    "image": (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico", ".bmp"),
}

_IGNORED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def normalize_url(url: str) -> str:
    """Canonical form used for every dedup decision.

    Drops the fragment, lowercases scheme and host, drops default ports and
    strips a trailing slash from the path (the site root becomes no path).
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    port = parts.port
    netloc = host
    if port and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    if parts.username:
        auth = parts.username + (f":{parts.password}" if parts.password else "")
        netloc = f"{auth}@{netloc}"
    path = parts.path.rstrip("/")
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def _host_variants(host: str) -> set[str]:
    host = host.lower()
    if host.startswith("www."):
        return {host, host[4:]}
    return {host, f"www.{host}"}


def _allowed_origins(*urls: str | None) -> set[tuple[str, str]]:
    origins = set()
    for url in urls:
        if not url:
            continue
        parts = urlsplit(url)
        if not parts.hostname:
            continue
        for host in _host_variants(parts.hostname):
            origins.add((parts.scheme.lower(), host))
    return origins


def extract_links(html: str, base_url: str, final_url: str | None = None) -> list[str]:
    """Extract same-site links from a page.

    Args:
        html: Page markup
        base_url: URL the page was requested as; defines the site origin
        final_url: URL after redirects; relative links resolve against it

    Returns:
        Ordered, deduplicated list of absolute normalized URLs
    """
    if not html:
        return []

    soup = parse_html(html)
    resolve_base = final_url or base_url
    base_tag = soup.find("base", href=True)
    if base_tag:
        resolve_base = urljoin(resolve_base, base_tag["href"].strip())

    origins = _allowed_origins(base_url, final_url)
    links: list[str] = []
    seen: set[str] = set()

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#") or href.lower().startswith(_IGNORED_SCHEMES):
            continue

        absolute = urljoin(resolve_base, href)
        parts = urlsplit(absolute)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            continue
        if (parts.scheme, parts.hostname.lower()) not in origins:
            continue

        normalized = normalize_url(absolute)
        if normalized not in seen:
            seen.add(normalized)
            links.append(normalized)

    return links


def get_resource_type(url: str) -> str | None:
    """Return the resource group for a URL (pdf, image, ...) or None for pages."""
    path = urlsplit(url).path.lower()
    for resource_type, extensions in RESOURCE_EXTENSIONS.items():
        if path.endswith(extensions):
            return resource_type
    return None


def is_html_response(content_type: str, html: str) -> bool:
    if content_type:
        return "html" in content_type.lower()
    return "<html" in html[:1024].lower() or "<!doctype html" in html[:1024].lower()


def extract_page_metadata(html: str) -> dict[str, str | None]:
    """Pull the title and meta description out of a page."""
    soup = parse_html(html)

    title = None
    if soup.title and soup.title.string:
        title = soup.title.string.strip() or None

    meta_description = None
    meta = soup.find("meta", attrs={"name": lambda v: v and v.lower() == "description"})
    if meta and meta.get("content"):
        meta_description = meta["content"].strip() or None

    return {"title": title, "meta_description": meta_description}
