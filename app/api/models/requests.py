"""API request models."""
from __future__ import annotations

from pydantic import BaseModel, Field, HttpUrl, field_validator

from site_audit.config.settings import settings


class StartAuditRequest(BaseModel):
    """Request body for starting a site audit."""

    url: HttpUrl = Field(
        ...,
        description="Seed URL of the site to audit",
        examples=["https://example.com"],
    )
    page_budget: int | None = Field(
        default=None,
        ge=1,
        le=settings.crawler.max_page_budget,
        description="Maximum number of pages to crawl (defaults to the server setting)",
        examples=[50],
    )

    @field_validator("url")
    @classmethod
    def validate_url_scheme(cls, v: HttpUrl) -> HttpUrl:
        """Ensure URL uses http or https."""
        if str(v).startswith(("http://", "https://")):
            return v
        raise ValueError("Only http and https URLs are supported")


class DismissCheckRequest(BaseModel):
    """Request body for dismissing a check on one URL."""

    check_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Name of the check, as listed by GET /checks",
        examples=["missing_meta_description"],
    )
    url: HttpUrl = Field(
        ...,
        description="Page URL; use the home page URL for site-wide checks",
        examples=["https://example.com/about"],
    )
