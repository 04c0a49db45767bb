"""Base classes for the check framework."""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any
from urllib.parse import urlsplit

from bs4 import BeautifulSoup


class CheckCategory(str, Enum):
    """Scoring categories."""
    SEO = "seo"
    TECHNICAL = "technical"
    AI_READINESS = "ai_readiness"


class CheckPriority(str, Enum):
    """Priority of a check; drives its weight in scoring."""
    CRITICAL = "critical"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"


class CheckStatus(str, Enum):
    """Outcome of a single check."""
    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class CheckScope(str, Enum):
    """Whether a check runs once per page or once per audit."""
    PAGE = "page"
    SITE = "site"


@dataclass
class CheckOutcome:
    """Result of running one check against one context.

    Attributes:
        status: passed, warning or failed
        details: Free-form data; carries a human-readable ``message``
    """
    status: CheckStatus
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def passed(cls, message: str, **details: Any) -> CheckOutcome:
        return cls(CheckStatus.PASSED, {"message": message, **details})

    @classmethod
    def warning(cls, message: str, **details: Any) -> CheckOutcome:
        return cls(CheckStatus.WARNING, {"message": message, **details})

    @classmethod
    def failed(cls, message: str, **details: Any) -> CheckOutcome:
        return cls(CheckStatus.FAILED, {"message": message, **details})


@dataclass
class CheckContext:
    """Input handed to a check.

    ``all_pages`` holds every page recorded for the audit so far. Each item
    exposes ``url``, ``status_code``, ``title``, ``meta_description``,
    ``last_modified``, ``redirects`` and ``is_resource``. Site-wide checks
    receive the home page as ``url``/``html``.

    The parsed ``soup`` is shared between checks of the same page and must
    not be modified.
    """
    url: str
    html: str
    title: str | None = None
    status_code: int = 200
    all_pages: list[Any] = field(default_factory=list)
    meta_description: str | None = None
    last_modified: str | None = None

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html or "", "lxml")

    @property
    def origin(self) -> str:
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def is_https(self) -> bool:
        return urlsplit(self.url).scheme == "https"

    def json_ld(self) -> list[dict[str, Any]]:
        """Return every JSON-LD object on the page, with @graph entries flattened."""
        objects: list[dict[str, Any]] = []
        for script in self.soup.find_all("script", type="application/ld+json"):
            try:
                data = json.loads(script.string or "")
            except (json.JSONDecodeError, TypeError):
                continue
            stack = data if isinstance(data, list) else [data]
            while stack:
                item = stack.pop(0)
                if not isinstance(item, dict):
                    continue
                objects.append(item)
                graph = item.get("@graph")
                if isinstance(graph, list):
                    stack.extend(graph)
        return objects


def schema_types(item: dict[str, Any]) -> list[str]:
    """Normalize the @type of a JSON-LD object to a list of strings."""
    value = item.get("@type", [])
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


class BaseCheck(ABC):
    """Abstract base class for all checks.

    Subclasses declare their metadata as class attributes and implement run().
    Checks are stateless; one instance serves every audit.
    """

    name: str = ""
    display_name: str = ""
    display_name_passed: str = ""
    description: str = ""
    category: CheckCategory = CheckCategory.SEO
    priority: CheckPriority = CheckPriority.RECOMMENDED
    scope: CheckScope = CheckScope.PAGE
    learn_more_url: str | None = None

    @property
    def is_site_wide(self) -> bool:
        return self.scope == CheckScope.SITE

    @abstractmethod
    def run(self, context: CheckContext) -> CheckOutcome:
        """Execute the check.

        Args:
            context: Page (or home page, for site-wide checks) and audit pages

        Returns:
            CheckOutcome with status and details
        """

    def to_dict(self) -> dict[str, Any]:
        """Convert the check definition to a dictionary."""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "display_name_passed": self.display_name_passed,
            "description": self.description,
            "category": self.category.value,
            "priority": self.priority.value,
            "scope": self.scope.value,
            "is_site_wide": self.is_site_wide,
            "learn_more_url": self.learn_more_url,
        }
