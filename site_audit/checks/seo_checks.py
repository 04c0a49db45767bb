"""SEO checks: titles, descriptions, headings, canonicals, crawlability."""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from urllib.parse import urljoin, urlsplit

import requests
from bs4 import BeautifulSoup

from site_audit.checks import http_probe
from site_audit.checks.base import (
    BaseCheck,
    CheckCategory,
    CheckContext,
    CheckOutcome,
    CheckPriority,
    CheckScope,
)
from site_audit.parser.page_parser import normalize_url

logger = logging.getLogger(__name__)

# Meta description length bounds (characters)
META_DESCRIPTION_MIN = 150
META_DESCRIPTION_MAX = 160

# Images larger than this are reported
MAX_IMAGE_BYTES = 500 * 1024
MAX_IMAGES_PER_PAGE = 20

MAX_URL_PATH_LENGTH = 75

STOP_WORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "being", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "must", "can", "this", "that", "these", "those", "i",
    "you", "he", "she", "it", "we", "they", "what", "which", "who", "when",
    "where", "why", "how", "all", "each", "every", "both", "few", "more",
    "most", "other", "some", "such", "no", "not", "only", "own", "same", "so",
    "than", "too", "very", "just", "also",
})

ID_PATTERNS = (
    re.compile(r"^[0-9]+$"),
    re.compile(r"^[a-f0-9]{8,}$", re.IGNORECASE),
    re.compile(r"^[a-z0-9]{20,}$", re.IGNORECASE),
    re.compile(r"^\d{4}-\d{2}-\d{2}$"),
)

SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml", "/sitemap/sitemap.xml")


def _words(text: str) -> list[str]:
    cleaned = re.sub(r"[^a-z0-9\s-]", " ", text.lower())
    return [w for w in re.split(r"[\s_-]+", cleaned) if len(w) > 2 and w not in STOP_WORDS]


def _content_pages(context: CheckContext) -> list:
    return [
        p for p in context.all_pages
        if 200 <= (p.status_code or 0) < 300 and not p.is_resource
    ]


def _find_duplicates(pairs: list[tuple[str, str]]) -> dict[str, list[str]]:
    """Group page URLs by value, keeping only values shared by several pages."""
    groups: dict[str, list[str]] = defaultdict(list)
    for value, url in pairs:
        groups[value.strip().lower()].append(url)
    return {value: urls for value, urls in groups.items() if len(urls) > 1}


class MissingTitleCheck(BaseCheck):
    name = "missing_title"
    display_name = "Missing Page Title"
    display_name_passed = "Page Title"
    description = "Every page should have a non-empty <title> tag"
    category = CheckCategory.SEO
    priority = CheckPriority.CRITICAL
    scope = CheckScope.PAGE
    learn_more_url = "https://developers.google.com/search/docs/appearance/title-link"

    def run(self, context: CheckContext) -> CheckOutcome:
        title = context.title
        if title is None and context.soup.title and context.soup.title.string:
            title = context.soup.title.string.strip()

        if not title:
            return CheckOutcome.failed(
                "Page has no title. Titles are the main headline shown in search results."
            )
        return CheckOutcome.passed(f"Page title is set ({len(title)} characters)", length=len(title))


class MissingMetaDescriptionCheck(BaseCheck):
    name = "missing_meta_description"
    display_name = "Missing Meta Description"
    display_name_passed = "Meta Description"
    description = "Pages should have a meta description summarizing their content"
    category = CheckCategory.SEO
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.PAGE
    learn_more_url = "https://developers.google.com/search/docs/appearance/snippet"

    def run(self, context: CheckContext) -> CheckOutcome:
        description = context.meta_description
        if description is None:
            meta = context.soup.find("meta", attrs={"name": "description"})
            description = (meta.get("content") or "").strip() if meta else ""

        if not description:
            return CheckOutcome.failed(
                "Page has no meta description. Search engines will generate a snippet instead."
            )
        return CheckOutcome.passed("Meta description is present")


class MetaDescriptionLengthCheck(BaseCheck):
    name = "meta_description_length"
    display_name = "Meta Description Length"
    display_name_passed = "Meta Description Length"
    description = (
        f"Meta description should be between {META_DESCRIPTION_MIN}-{META_DESCRIPTION_MAX} characters"
    )
    category = CheckCategory.SEO
    priority = CheckPriority.OPTIONAL
    scope = CheckScope.PAGE
    learn_more_url = "https://developers.google.com/search/docs/appearance/snippet"

    def run(self, context: CheckContext) -> CheckOutcome:
        description = context.meta_description
        if description is None:
            meta = context.soup.find("meta", attrs={"name": "description"})
            description = (meta.get("content") or "") if meta else ""
        description = description.strip()

        # Missing descriptions are reported by missing_meta_description
        if not description:
            return CheckOutcome.passed("No meta description to measure")

        length = len(description)
        if length < META_DESCRIPTION_MIN or length > META_DESCRIPTION_MAX:
            return CheckOutcome.warning(
                f"Meta description is {length} characters "
                f"(recommended: {META_DESCRIPTION_MIN}-{META_DESCRIPTION_MAX})",
                length=length,
            )
        return CheckOutcome.passed(f"Meta description is {length} characters", length=length)


class HeadingHierarchyCheck(BaseCheck):
    name = "heading_hierarchy"
    display_name = "Skipped Heading Levels"
    display_name_passed = "Heading Hierarchy"
    description = "Heading levels should not be skipped"
    category = CheckCategory.SEO
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.PAGE
    learn_more_url = (
        "https://developer.mozilla.org/en-US/docs/Web/HTML/Element/Heading_Elements#usage_notes"
    )

    def run(self, context: CheckContext) -> CheckOutcome:
        levels = [
            int(tag.name[1])
            for tag in context.soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])
        ]
        if not levels:
            return CheckOutcome.passed("Page has no headings")

        skipped = []
        previous = 0
        for level in levels:
            if previous and level > previous + 1:
                skipped.append(f"H{previous} -> H{level}")
            previous = level

        if skipped:
            return CheckOutcome.warning(
                "Headings should follow a logical order (H1, H2, H3). "
                f"Skipped: {', '.join(skipped)}.",
                skipped_levels=skipped,
            )
        return CheckOutcome.passed("Headings follow correct hierarchy")


class CanonicalValidationCheck(BaseCheck):
    name = "canonical_validation"
    display_name = "Invalid Canonical URL"
    display_name_passed = "Valid Canonical URLs"
    description = "Canonical URLs should be absolute, accessible and final"
    category = CheckCategory.SEO
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.PAGE
    learn_more_url = (
        "https://developers.google.com/search/docs/crawling-indexing/consolidate-duplicate-urls"
    )

    @staticmethod
    def _canonical_href(soup: BeautifulSoup) -> str | None:
        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            if isinstance(rel, str):
                rel = rel.split()
            if "canonical" in [r.lower() for r in rel]:
                return link["href"].strip()
        return None

    def run(self, context: CheckContext) -> CheckOutcome:
        canonical = self._canonical_href(context.soup)
        if not canonical:
            return CheckOutcome.passed("No canonical tag")

        canonical_url = urljoin(context.url, canonical)
        parts = urlsplit(canonical_url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            return CheckOutcome.failed(
                f'Canonical URL is malformed: "{canonical}". Use absolute URLs for canonical tags.',
                canonical=canonical,
            )

        normalized_canonical = normalize_url(canonical_url)
        if normalized_canonical == normalize_url(context.url):
            return CheckOutcome.passed("Canonical URL is self-referencing", canonical=canonical_url)

        try:
            response = http_probe.head(canonical_url, allow_redirects=False)
            if response.status_code >= 400:
                return CheckOutcome.failed(
                    f"Canonical URL returns {response.status_code} error. "
                    "Canonical must point to an accessible page.",
                    canonical=canonical_url,
                    status=response.status_code,
                )
            if 300 <= response.status_code < 400:
                return CheckOutcome.warning(
                    f"Canonical URL redirects ({response.status_code}). "
                    "Canonical should point directly to the final URL.",
                    canonical=canonical_url,
                    status=response.status_code,
                )

            target = http_probe.get(canonical_url)
            target_canonical = self._canonical_href(BeautifulSoup(target.text, "lxml"))
        except requests.RequestException as e:
            return CheckOutcome.failed(
                f"Could not verify canonical URL ({canonical_url}). Ensure it is accessible.",
                canonical=canonical_url,
                error=str(e),
            )

        if target_canonical:
            target_canonical_url = urljoin(canonical_url, target_canonical)
            if normalize_url(target_canonical_url) != normalized_canonical:
                return CheckOutcome.failed(
                    f"Canonical chain detected: page points to {canonical_url}, "
                    f"which points to {target_canonical_url}.",
                    canonical=canonical_url,
                    target_canonical=target_canonical_url,
                )

        return CheckOutcome.warning(
            f"Canonical points to a different URL: {canonical_url}. "
            "Ensure this is intentional for duplicate content.",
            canonical=canonical_url,
        )


class NoindexOnImportantPagesCheck(BaseCheck):
    name = "noindex_on_important_pages"
    display_name = "Noindex Tag on Important Pages"
    display_name_passed = "No Noindex Issues"
    description = "Important pages should not be excluded from search indexes"
    category = CheckCategory.SEO
    priority = CheckPriority.CRITICAL
    scope = CheckScope.PAGE
    learn_more_url = "https://developers.google.com/search/docs/crawling-indexing/block-indexing"

    def run(self, context: CheckContext) -> CheckOutcome:
        directives = []
        for meta in context.soup.find_all("meta", attrs={"name": True}):
            if meta["name"].lower() in ("robots", "googlebot"):
                directives.append((meta.get("content") or "").lower())

        if not any("noindex" in d for d in directives):
            return CheckOutcome.passed("Page is indexable")

        segments = [s for s in urlsplit(context.url).path.split("/") if s]
        if len(segments) <= 1:
            return CheckOutcome.failed(
                "Important page has a noindex directive and will not appear in search results.",
                directives=directives,
            )
        return CheckOutcome.warning(
            "Page has a noindex directive. Verify it should be excluded from search.",
            directives=directives,
        )


class NonDescriptiveUrlCheck(BaseCheck):
    name = "non_descriptive_url"
    display_name = "Non-Descriptive URL"
    display_name_passed = "Descriptive URL"
    description = "URLs should contain readable words that describe the page"
    category = CheckCategory.SEO
    priority = CheckPriority.OPTIONAL
    scope = CheckScope.PAGE
    learn_more_url = "https://developers.google.com/search/docs/crawling-indexing/url-structure"

    def run(self, context: CheckContext) -> CheckOutcome:
        path = urlsplit(context.url).path
        segments = [re.sub(r"\.[^.]+$", "", s) for s in path.split("/") if s]
        if not segments:
            return CheckOutcome.passed("Home page URL")

        slug = segments[-1]
        if any(pattern.match(slug) for pattern in ID_PATTERNS):
            return CheckOutcome.failed(
                f'URL ends in an identifier ("{slug}") instead of descriptive words.',
                slug=slug,
            )

        issues = []
        keywords = _words(" ".join(segments))
        if not keywords:
            issues.append("URL contains no descriptive keywords")
        if "_" in path:
            issues.append("URL uses underscores instead of hyphens")
        if path != path.lower():
            issues.append("URL contains uppercase characters")
        if len(path) > MAX_URL_PATH_LENGTH:
            issues.append(f"URL path is {len(path)} characters (max {MAX_URL_PATH_LENGTH})")
        if keywords and context.title:
            title_words = set(_words(context.title))
            if not title_words.intersection(_words(slug)):
                issues.append("URL words do not appear in the page title")

        if issues:
            return CheckOutcome.warning("; ".join(issues), issues=issues)
        return CheckOutcome.passed("URL is descriptive")


class OversizedImagesCheck(BaseCheck):
    name = "oversized_images"
    display_name = "Oversized Images"
    display_name_passed = "Image Sizes"
    description = "Images should be compressed below 500KB"
    category = CheckCategory.SEO
    priority = CheckPriority.OPTIONAL
    scope = CheckScope.PAGE
    learn_more_url = "https://web.dev/articles/optimize-cls#images_without_dimensions"

    def run(self, context: CheckContext) -> CheckOutcome:
        sources = []
        for img in context.soup.find_all("img", src=True):
            src = urljoin(context.url, img["src"].strip())
            if src.startswith(("http://", "https://")) and src not in sources:
                sources.append(src)
        if not sources:
            return CheckOutcome.passed("No images found")

        oversized = []
        for src in sources[:MAX_IMAGES_PER_PAGE]:
            try:
                response = http_probe.head(src)
            except requests.RequestException as e:
                logger.debug("Could not size image %s: %s", src, e)
                continue
            length = response.headers.get("Content-Length", "")
            if length.isdigit() and int(length) > MAX_IMAGE_BYTES:
                oversized.append({"url": src, "size_kb": round(int(length) / 1024)})

        if oversized:
            return CheckOutcome.failed(
                f"{len(oversized)} image(s) exceed {MAX_IMAGE_BYTES // 1024}KB. "
                "Compress or resize them to speed up page loads.",
                images=oversized,
            )
        return CheckOutcome.passed(f"{min(len(sources), MAX_IMAGES_PER_PAGE)} image(s) checked")


class DuplicateTitlesCheck(BaseCheck):
    name = "duplicate_titles"
    display_name = "Duplicate Page Titles"
    display_name_passed = "Unique Page Titles"
    description = "Each page should have a unique title"
    category = CheckCategory.SEO
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = "https://developers.google.com/search/docs/appearance/title-link"

    def run(self, context: CheckContext) -> CheckOutcome:
        pairs = [(p.title, p.url) for p in _content_pages(context) if p.title]
        duplicates = _find_duplicates(pairs)
        if duplicates:
            count = sum(len(urls) for urls in duplicates.values())
            return CheckOutcome.failed(
                f"{count} pages share {len(duplicates)} duplicate title(s).",
                duplicates=[{"title": t, "urls": urls} for t, urls in duplicates.items()],
            )
        return CheckOutcome.passed("All page titles are unique")


class DuplicateMetaDescriptionsCheck(BaseCheck):
    name = "duplicate_meta_descriptions"
    display_name = "Duplicate Meta Descriptions"
    display_name_passed = "Unique Meta Descriptions"
    description = "Each page should have a unique meta description"
    category = CheckCategory.SEO
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.SITE
    learn_more_url = "https://developers.google.com/search/docs/appearance/snippet"

    def run(self, context: CheckContext) -> CheckOutcome:
        pairs = [(p.meta_description, p.url) for p in _content_pages(context) if p.meta_description]
        duplicates = _find_duplicates(pairs)
        if duplicates:
            count = sum(len(urls) for urls in duplicates.values())
            return CheckOutcome.warning(
                f"{count} pages share {len(duplicates)} duplicate meta description(s).",
                duplicates=[{"description": d, "urls": urls} for d, urls in duplicates.items()],
            )
        return CheckOutcome.passed("All meta descriptions are unique")


class BrokenInternalLinksCheck(BaseCheck):
    name = "broken_internal_links"
    display_name = "Broken Internal Links"
    display_name_passed = "Internal Links"
    description = "Internal links should not lead to error pages"
    category = CheckCategory.SEO
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = "https://developers.google.com/search/docs/crawling-indexing/http-network-errors"

    def run(self, context: CheckContext) -> CheckOutcome:
        by_status: dict[int, list[str]] = defaultdict(list)
        for page in context.all_pages:
            if (page.status_code or 0) >= 400:
                by_status[page.status_code].append(page.url)

        if by_status:
            count = sum(len(urls) for urls in by_status.values())
            summary = ", ".join(f"{len(urls)} x {code}" for code, urls in sorted(by_status.items()))
            return CheckOutcome.failed(
                f"Found {count} broken internal link(s) ({summary}).",
                broken={str(code): urls for code, urls in sorted(by_status.items())},
            )
        return CheckOutcome.passed("No broken internal links found")


class RedirectChainsCheck(BaseCheck):
    name = "redirect_chains"
    display_name = "Redirect Chains Detected"
    display_name_passed = "No Redirect Chains"
    description = "Redirects should reach their destination in a single hop"
    category = CheckCategory.SEO
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.SITE
    learn_more_url = (
        "https://developers.google.com/search/docs/crawling-indexing/301-redirects#redirect-chains"
    )

    def run(self, context: CheckContext) -> CheckOutcome:
        chains = []
        for page in context.all_pages:
            hops = list(getattr(page, "redirects", None) or [])
            if len(hops) >= 2:
                chains.append({"url": page.url, "hops": len(hops), "chain": hops})

        if not chains:
            return CheckOutcome.passed("No redirect chains found")

        longest = max(c["hops"] for c in chains)
        message = (
            f"Found {len(chains)} redirect chain(s), longest is {longest} hops. "
            "Point links at the final URL."
        )
        if longest >= 3:
            return CheckOutcome.failed(message, chains=chains)
        return CheckOutcome.warning(message, chains=chains)


class MissingRobotsTxtCheck(BaseCheck):
    name = "missing_robots_txt"
    display_name = "Missing robots.txt"
    display_name_passed = "robots.txt"
    description = "Sites should publish a robots.txt file"
    category = CheckCategory.SEO
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = "https://developers.google.com/search/docs/crawling-indexing/robots/intro"

    def run(self, context: CheckContext) -> CheckOutcome:
        robots = http_probe.fetch_text(http_probe.site_url(context.origin, "/robots.txt"))
        if robots is None:
            return CheckOutcome.failed("No robots.txt file found at the site root.")
        if not re.search(r"^\s*user-agent\s*:", robots, re.IGNORECASE | re.MULTILINE):
            return CheckOutcome.warning("robots.txt exists but declares no User-agent rules.")
        return CheckOutcome.passed("robots.txt found")


class MissingSitemapCheck(BaseCheck):
    name = "missing_sitemap"
    display_name = "Missing XML Sitemap"
    display_name_passed = "XML Sitemap"
    description = "Sites should publish an XML sitemap"
    category = CheckCategory.SEO
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = "https://developers.google.com/search/docs/crawling-indexing/sitemaps/overview"

    def run(self, context: CheckContext) -> CheckOutcome:
        for path in SITEMAP_PATHS:
            url = http_probe.site_url(context.origin, path)
            if http_probe.exists(url):
                return CheckOutcome.passed(f"Sitemap found at {path}", sitemap=url)

        robots = http_probe.fetch_text(http_probe.site_url(context.origin, "/robots.txt")) or ""
        declared = re.findall(r"^\s*sitemap\s*:\s*(\S+)", robots, re.IGNORECASE | re.MULTILINE)
        for url in declared:
            if http_probe.exists(url):
                return CheckOutcome.passed("Sitemap declared in robots.txt", sitemap=url)

        if declared:
            return CheckOutcome.warning(
                "Sitemap is declared in robots.txt but could not be accessed.",
                declared=declared,
            )
        return CheckOutcome.failed("No XML sitemap found.")


class HttpToHttpsRedirectCheck(BaseCheck):
    name = "http_to_https_redirect"
    display_name = "Missing HTTP to HTTPS Redirect"
    display_name_passed = "HTTP to HTTPS Redirect"
    description = "The HTTP version of the site should redirect to HTTPS"
    category = CheckCategory.SEO
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = (
        "https://developers.google.com/search/docs/crawling-indexing/consolidate-duplicate-urls"
    )

    def run(self, context: CheckContext) -> CheckOutcome:
        if not context.is_https:
            return CheckOutcome.passed("Site is not served over HTTPS; no redirect to verify")

        http_url = "http://" + context.origin.split("://", 1)[1] + "/"
        try:
            response = http_probe.head(http_url, allow_redirects=False)
        except requests.RequestException:
            return CheckOutcome.passed("HTTP version of the site is not reachable")

        if 300 <= response.status_code < 400:
            location = urljoin(http_url, response.headers.get("Location", ""))
            if location.startswith("https://"):
                return CheckOutcome.passed("HTTP redirects to HTTPS", location=location)
            return CheckOutcome.warning(
                f"HTTP redirects to {location} instead of an HTTPS URL.",
                location=location,
            )
        return CheckOutcome.failed(
            "HTTP version of the site does not redirect to HTTPS.",
            status=response.status_code,
        )


SEO_CHECKS: tuple[type[BaseCheck], ...] = (
    MissingTitleCheck,
    MissingMetaDescriptionCheck,
    MetaDescriptionLengthCheck,
    HeadingHierarchyCheck,
    CanonicalValidationCheck,
    NoindexOnImportantPagesCheck,
    NonDescriptiveUrlCheck,
    OversizedImagesCheck,
    DuplicateTitlesCheck,
    DuplicateMetaDescriptionsCheck,
    BrokenInternalLinksCheck,
    RedirectChainsCheck,
    MissingRobotsTxtCheck,
    MissingSitemapCheck,
    HttpToHttpsRedirectCheck,
)
