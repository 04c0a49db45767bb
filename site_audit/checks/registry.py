"""Check registry for managing available checks."""
from __future__ import annotations

from site_audit.checks.base import BaseCheck, CheckCategory


class CheckRegistry:
    """Registry for check definitions.

    Usage:
        registry = CheckRegistry()
        registry.register(MyCheck())
        for check in registry.page_checks():
            ...
    """

    def __init__(self):
        self._checks: dict[str, BaseCheck] = {}
        self._categories: dict[str, list[str]] = {}

    def register(self, check: BaseCheck) -> None:
        """Register a check instance.

        Args:
            check: Check instance to register

        Raises:
            ValueError: If the check has no name or the name is already taken
        """
        if not check.name:
            raise ValueError(f"{type(check).__name__} does not define a name")
        if check.name in self._checks:
            raise ValueError(f"Check already registered: {check.name}")

        self._checks[check.name] = check

        # Track by category
        category = check.category.value
        if category not in self._categories:
            self._categories[category] = []
        self._categories[category].append(check.name)

    def unregister(self, name: str) -> None:
        """Unregister a check by name.

        Args:
            name: Name of check to remove
        """
        if name in self._checks:
            check = self._checks.pop(name)

            # Remove from category tracking
            category = check.category.value
            if category in self._categories:
                self._categories[category] = [
                    n for n in self._categories[category] if n != name
                ]

    def get(self, name: str) -> BaseCheck | None:
        """Get a check by name.

        Args:
            name: Name of check to retrieve

        Returns:
            Check instance or None if not found
        """
        return self._checks.get(name)

    def get_by_category(self, category: CheckCategory | str) -> list[BaseCheck]:
        """Get all checks in a category.

        Args:
            category: Category enum or value

        Returns:
            List of check instances in the category
        """
        key = category.value if isinstance(category, CheckCategory) else category
        names = self._categories.get(key, [])
        return [self._checks[n] for n in names if n in self._checks]

    def page_checks(self) -> list[BaseCheck]:
        """Checks that run once per page, in registration order."""
        return [c for c in self._checks.values() if not c.is_site_wide]

    def site_wide_checks(self) -> list[BaseCheck]:
        """Checks that run once per audit, in registration order."""
        return [c for c in self._checks.values() if c.is_site_wide]

    def list_all(self) -> list[BaseCheck]:
        """List all registered checks.

        Returns:
            List of all check instances
        """
        return list(self._checks.values())

    def list_categories(self) -> list[str]:
        """List all categories that have at least one check.

        Returns:
            List of category names
        """
        return [c for c, names in self._categories.items() if names]

    def __len__(self) -> int:
        return len(self._checks)

    def __contains__(self, name: object) -> bool:
        return name in self._checks


def register_default_checks(registry: CheckRegistry) -> CheckRegistry:
    """Register the built-in catalogue on a registry."""
    from site_audit.checks.ai_checks import AI_CHECKS
    from site_audit.checks.seo_checks import SEO_CHECKS
    from site_audit.checks.technical_checks import TECHNICAL_CHECKS

    for check_cls in (*SEO_CHECKS, *TECHNICAL_CHECKS, *AI_CHECKS):
        registry.register(check_cls())
    return registry


def create_default_registry() -> CheckRegistry:
    return register_default_checks(CheckRegistry())


# Global registry instance
check_registry = create_default_registry()
