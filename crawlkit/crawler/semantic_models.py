"""
Semantic crawl data model.

Targets, progress snapshots and results of a same-site crawl that looks for
interactive UI tools.
"""

from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

PropertyType = Literal["string", "number", "boolean", "object", "array"]


# ============================================================================
# Tools
# ============================================================================


class ToolProperty(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: PropertyType
    description: str | None = None


class ToolInputSchema(BaseModel):
    """JSON-schema style description of a tool's inputs."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["object"] = "object"
    properties: dict[str, ToolProperty] = Field(default_factory=dict)
    required: list[str] | None = None


class SemanticTool(BaseModel):
    """One thing a user can do on a page (fill a form, search, click, navigate)."""

    model_config = ConfigDict(extra="forbid")

    name: str
    description: str
    input_schema: ToolInputSchema = Field(default_factory=ToolInputSchema)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


# ============================================================================
# Crawl
# ============================================================================


class CrawlTarget(BaseModel):
    """Where a semantic crawl starts and how far it may go."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    site: str
    entry_points: list[str]
    max_pages: int = Field(default=50, gt=0, description="Pages visited before stopping")
    max_depth: int = Field(default=3, ge=0, description="Link hops from an entry point")
    include_patterns: list[str] = Field(default_factory=list, description="URL globs to keep")
    exclude_patterns: list[str] = Field(default_factory=list, description="URL globs to skip")

    @field_validator("entry_points")
    @classmethod
    def validate_entry_points(cls, v: list[str]) -> list[str]:
        for url in v:
            parts = urlsplit(url)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                raise ValueError(f"Entry point must be an absolute http(s) URL: {url}")
        return v


class CrawlProgress(BaseModel):
    """Snapshot reported after each scanned page."""

    model_config = ConfigDict(frozen=True)

    pages_scanned: int
    pages_total: int
    current_url: str
    tools_found: int
    errors: int


class SemanticCrawlResult(BaseModel):
    site: str
    pages_scanned: int = 0
    tools_discovered: int = 0
    tools_by_page: dict[str, list[SemanticTool]] = Field(default_factory=dict)
    duration_ms: float = 0.0
    errors: list[str] = Field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "site": self.site,
            "pages_scanned": self.pages_scanned,
            "tools_discovered": self.tools_discovered,
            "tools_by_page": {
                url: [t.to_dict() for t in tools] for url, tools in self.tools_by_page.items()
            },
            "duration_ms": self.duration_ms,
            "errors": self.errors,
            "cancelled": self.cancelled,
        }
