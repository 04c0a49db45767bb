"""AI-readiness checks: crawler access, machine-readable content, freshness."""
from __future__ import annotations

import logging
import re
from datetime import UTC, datetime, timedelta
from urllib.parse import urlsplit, urlunsplit

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
    schema_types,
)

logger = logging.getLogger(__name__)

AI_CRAWLERS = ("GPTBot", "PerplexityBot", "ClaudeBot", "ChatGPT-User", "Anthropic-AI")

ORGANIZATION_TYPES = {"Organization", "LocalBusiness", "Corporation"}
ORGANIZATION_FIELDS = ("name", "url", "logo", "description")

MARKDOWN_PATHS = ("/llms-full.txt", "/README.md", "/docs.md", "/about.md", "/index.md")
MARKDOWN_CONTENT_TYPES = ("text/markdown", "text/plain", "text/x-markdown")
MARKDOWN_PAGE_SAMPLE = 10

STALE_THRESHOLD_DAYS = 90

# Response time thresholds (milliseconds)
FAST_RESPONSE_MS = 2000
SLOW_RESPONSE_MS = 5000
RESPONSE_TIMEOUT = 10.0

# Content thresholds for server-rendered markup
MIN_WORDS = 100
SPARSE_WORDS = 50
HEAVY_SCRIPT_COUNT = 10

_SPA_SELECTORS = ("#root", "#__next", "[data-reactroot]", "#app", "[ng-app]", "[data-ng-app]", "app-root")


def _robots_groups(text: str) -> list[tuple[list[str], list[str]]]:
    """Split robots.txt into (user agents, disallow rules) groups."""
    groups: list[tuple[list[str], list[str]]] = []
    agents: list[str] = []
    rules: list[str] = []
    in_rules = False

    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if ":" not in line:
            continue
        key, value = (part.strip() for part in line.split(":", 1))
        key = key.lower()
        if key == "user-agent":
            if in_rules:
                groups.append((agents, rules))
                agents, rules, in_rules = [], [], False
            agents.append(value.lower())
        elif key in ("disallow", "allow"):
            in_rules = True
            if key == "disallow":
                rules.append(value)

    if agents:
        groups.append((agents, rules))
    return groups


class AiCrawlersBlockedCheck(BaseCheck):
    name = "ai_crawlers_blocked"
    display_name = "AI Crawlers Blocked"
    display_name_passed = "AI Crawler Access"
    description = "robots.txt should not block AI crawlers like GPTBot and ClaudeBot"
    category = CheckCategory.AI_READINESS
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = "https://platform.openai.com/docs/bots"

    def run(self, context: CheckContext) -> CheckOutcome:
        robots = http_probe.fetch_text(http_probe.site_url(context.origin, "/robots.txt"))
        if robots is None:
            return CheckOutcome.passed("No robots.txt; AI crawlers are not blocked")

        blocked = []
        for agents, rules in _robots_groups(robots):
            if "/" not in rules:
                continue
            for bot in AI_CRAWLERS:
                if bot.lower() in agents and bot not in blocked:
                    blocked.append(bot)

        if blocked:
            return CheckOutcome.failed(
                f"AI crawlers blocked: {', '.join(blocked)}. "
                "These assistants cannot read or cite your site.",
                blocked=blocked,
            )
        return CheckOutcome.passed("AI crawlers are allowed by robots.txt")


class JsRenderedContentCheck(BaseCheck):
    name = "js_rendered_content"
    display_name = "JavaScript-Dependent Content"
    display_name_passed = "Server-Rendered Content"
    description = "Page content should be present in the initial HTML"
    category = CheckCategory.AI_READINESS
    priority = CheckPriority.CRITICAL
    scope = CheckScope.PAGE
    learn_more_url = (
        "https://developers.google.com/search/docs/crawling-indexing/javascript/javascript-seo-basics"
    )

    def run(self, context: CheckContext) -> CheckOutcome:
        script_count = len(context.soup.find_all("script"))
        is_spa = any(context.soup.select_one(s) for s in _SPA_SELECTORS) or bool(
            context.soup.find(lambda tag: any(a.startswith("data-v-") for a in tag.attrs))
        )

        # Stripping mutates the tree, so work on a private copy
        soup = BeautifulSoup(context.html, "lxml")
        for tag in soup(["script", "style", "noscript", "nav", "header", "footer"]):
            tag.decompose()
        body = soup.body or soup
        word_count = len(body.get_text(" ").split())
        paragraph_count = len(soup.find_all("p"))
        heading_count = len(soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]))

        if word_count >= MIN_WORDS and (paragraph_count >= 2 or heading_count >= 1):
            return CheckOutcome.passed(
                f"Page has {word_count} words of server-rendered content that AI crawlers can read.",
                word_count=word_count,
                paragraph_count=paragraph_count,
            )
        if is_spa and word_count < SPARSE_WORDS:
            return CheckOutcome.failed(
                f"Page appears to be a JavaScript app with only {word_count} words in its initial "
                "HTML. AI crawlers do not run JavaScript and will see a nearly blank page.",
                word_count=word_count,
                is_spa=True,
            )
        if word_count < SPARSE_WORDS and script_count > HEAVY_SCRIPT_COUNT:
            return CheckOutcome.failed(
                f"Page has only {word_count} words but {script_count} script tags. "
                "Content is likely rendered by JavaScript.",
                word_count=word_count,
                script_count=script_count,
            )
        if word_count < MIN_WORDS:
            return CheckOutcome.warning(
                f"Page has only {word_count} words in its initial HTML. "
                "Verify that important content is server-rendered.",
                word_count=word_count,
            )
        return CheckOutcome.passed(
            f"Page has {word_count} words of server-rendered content.",
            word_count=word_count,
        )


class MissingLlmsTxtCheck(BaseCheck):
    name = "missing_llms_txt"
    display_name = "Missing llms.txt File"
    display_name_passed = "llms.txt File"
    description = "Sites should publish /llms.txt to guide language models"
    category = CheckCategory.AI_READINESS
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = "https://llmstxt.org/"

    def run(self, context: CheckContext) -> CheckOutcome:
        url = http_probe.site_url(context.origin, "/llms.txt")
        if http_probe.exists(url):
            return CheckOutcome.passed("llms.txt found", url=url)
        return CheckOutcome.failed(
            "No llms.txt file found. It tells AI assistants which pages matter most."
        )


class MissingMarkdownCheck(BaseCheck):
    name = "missing_markdown"
    display_name = "Missing Markdown Alternatives"
    display_name_passed = "Markdown Alternatives"
    description = "Markdown versions of pages improve AI crawler accessibility"
    category = CheckCategory.AI_READINESS
    priority = CheckPriority.OPTIONAL
    scope = CheckScope.SITE
    learn_more_url = "https://llmstxt.org/"

    @staticmethod
    def _markdown_url(page_url: str) -> str:
        parts = urlsplit(page_url)
        path = parts.path.rstrip("/") or "/index"
        return urlunsplit((parts.scheme, parts.netloc, path + ".md", "", ""))

    def run(self, context: CheckContext) -> CheckOutcome:
        found = [
            path for path in MARKDOWN_PATHS
            if http_probe.exists(http_probe.site_url(context.origin, path))
        ]

        pages = [p for p in context.all_pages if not p.is_resource][:MARKDOWN_PAGE_SAMPLE]
        for page in pages:
            md_url = self._markdown_url(page.url)
            try:
                response = http_probe.head(md_url)
            except requests.RequestException as e:
                logger.debug("Markdown probe of %s failed: %s", md_url, e)
                continue
            content_type = response.headers.get("Content-Type", "").lower()
            if response.ok and content_type.startswith(MARKDOWN_CONTENT_TYPES):
                found.append(md_url)

        if not found:
            return CheckOutcome.failed(
                "No markdown alternatives found. Consider providing /llms-full.txt "
                "or .md versions of key pages."
            )
        return CheckOutcome.passed(
            f"Found {len(found)} markdown endpoint(s): {', '.join(found[:3])}",
            endpoints=found,
        )


class MissingOrganizationSchemaCheck(BaseCheck):
    name = "missing_organization_schema"
    display_name = "Missing Organization Schema"
    display_name_passed = "Organization Schema"
    description = "The home page should describe the organization with JSON-LD"
    category = CheckCategory.AI_READINESS
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.SITE
    learn_more_url = "https://developers.google.com/search/docs/appearance/structured-data/organization"

    def run(self, context: CheckContext) -> CheckOutcome:
        organization = next(
            (
                item for item in context.json_ld()
                if ORGANIZATION_TYPES.intersection(schema_types(item))
            ),
            None,
        )
        if organization is None:
            return CheckOutcome.failed(
                "No Organization schema found. AI assistants cannot reliably identify your business."
            )

        name = organization.get("name") or "Unknown"
        missing = [f for f in ORGANIZATION_FIELDS if not organization.get(f)]
        if missing:
            return CheckOutcome.warning(
                f'Organization schema for "{name}" is missing: {", ".join(missing)}.',
                organization_name=name,
                missing_fields=missing,
            )
        return CheckOutcome.passed(
            f'Organization schema found with name "{name}".',
            organization_name=name,
        )


class MissingStructuredDataCheck(BaseCheck):
    name = "missing_structured_data"
    display_name = "Missing Structured Data"
    display_name_passed = "Structured Data (JSON-LD)"
    description = "Pages should include JSON-LD structured data"
    category = CheckCategory.AI_READINESS
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = (
        "https://developers.google.com/search/docs/appearance/structured-data/intro-structured-data"
    )

    def run(self, context: CheckContext) -> CheckOutcome:
        if not context.soup.find("script", type="application/ld+json"):
            return CheckOutcome.failed(
                "No JSON-LD structured data found. Structured data helps search engines "
                "and AI systems understand your content."
            )
        types = sorted({t for item in context.json_ld() for t in schema_types(item)})
        return CheckOutcome.passed(
            f"Structured data found ({', '.join(types) or 'untyped'})",
            schema_types=types,
        )


def _parse_date(value: str) -> datetime | None:
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class NoRecentUpdatesCheck(BaseCheck):
    name = "no_recent_updates"
    display_name = "No Recent Updates"
    display_name_passed = "Content Freshness"
    description = "Sites without recent updates may be deprioritized in search"
    category = CheckCategory.AI_READINESS
    priority = CheckPriority.RECOMMENDED
    scope = CheckScope.SITE
    learn_more_url = "https://developers.google.com/search/docs/fundamentals/creating-helpful-content"

    def run(self, context: CheckContext) -> CheckOutcome:
        dates = [
            d for d in (_parse_date(p.last_modified) for p in context.all_pages if p.last_modified)
            if d is not None
        ]

        sitemap = http_probe.fetch_text(http_probe.site_url(context.origin, "/sitemap.xml"))
        if sitemap:
            for match in re.findall(r"<lastmod>([^<]+)</lastmod>", sitemap, re.IGNORECASE):
                parsed = _parse_date(match)
                if parsed is not None:
                    dates.append(parsed)

        if not dates:
            return CheckOutcome.warning(
                "Unable to determine content freshness. No Last-Modified headers or "
                "sitemap lastmod dates found."
            )

        latest = max(dates)
        now = datetime.now(UTC)
        days = (now - latest).days
        if latest < now - timedelta(days=STALE_THRESHOLD_DAYS):
            return CheckOutcome.failed(
                f"No content updates in {days} days (threshold: {STALE_THRESHOLD_DAYS} days).",
                days_since_update=days,
                last_update=latest.isoformat(),
            )
        return CheckOutcome.passed(
            f"Content updated {days} day(s) ago",
            days_since_update=days,
            last_update=latest.isoformat(),
        )


class SlowPageResponseCheck(BaseCheck):
    name = "slow_page_response"
    display_name = "Slow Page Response"
    display_name_passed = "Fast Page Response"
    description = "The home page should respond quickly to crawlers"
    category = CheckCategory.AI_READINESS
    priority = CheckPriority.CRITICAL
    scope = CheckScope.SITE
    learn_more_url = (
        "https://developers.google.com/search/docs/crawling-indexing/large-site-managing-crawl-budget"
    )

    def run(self, context: CheckContext) -> CheckOutcome:
        try:
            response = http_probe.get(context.origin + "/", timeout=RESPONSE_TIMEOUT)
        except requests.Timeout:
            return CheckOutcome.failed(
                f"Home page took over {RESPONSE_TIMEOUT:g} seconds to respond. "
                "AI crawlers will skip your site."
            )
        except requests.RequestException as e:
            return CheckOutcome.failed(f"Could not measure response time: {e}")

        elapsed_ms = round(response.elapsed.total_seconds() * 1000)
        seconds = f"{elapsed_ms / 1000:.2f}"
        if elapsed_ms <= FAST_RESPONSE_MS:
            return CheckOutcome.passed(
                f"Home page responds in {seconds}s.", response_time_ms=elapsed_ms
            )
        if elapsed_ms <= SLOW_RESPONSE_MS:
            return CheckOutcome.warning(
                f"Home page responds in {seconds}s. AI crawlers prefer responses under 2s.",
                response_time_ms=elapsed_ms,
            )
        return CheckOutcome.failed(
            f"Home page takes {seconds}s to respond. AI crawlers may time out.",
            response_time_ms=elapsed_ms,
        )


AI_CHECKS: tuple[type[BaseCheck], ...] = (
    JsRenderedContentCheck,
    MissingStructuredDataCheck,
    MissingOrganizationSchemaCheck,
    AiCrawlersBlockedCheck,
    MissingLlmsTxtCheck,
    MissingMarkdownCheck,
    NoRecentUpdatesCheck,
    SlowPageResponseCheck,
)
