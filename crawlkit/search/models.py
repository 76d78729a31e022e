"""
Pydantic models for search requests and results.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SearchEngine(str, Enum):
    """Supported search engines."""

    GOOGLE = "google"
    BING = "bing"
    DUCKDUCKGO = "duckduckgo"


class SearchType(str, Enum):
    """Result vertical."""

    WEB = "web"
    IMAGE = "image"
    VIDEO = "video"
    NEWS = "news"


class SearchOptions(BaseModel):
    """Per-query search options."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    engine: SearchEngine = Field(default=SearchEngine.DUCKDUCKGO)
    type: SearchType = Field(default=SearchType.WEB)
    max_results: int = Field(default=10, ge=1, description="Upper bound on parsed results")
    lang: str | None = Field(default=None, description="Interface language code")
    region: str | None = Field(default=None, description="Region/country code")
    page: int = Field(default=1, ge=1, description="1-based result page")
    use_browser: bool = Field(
        default=False, description="Render the result page in a browser backend"
    )
    timeout: float = Field(default=30.0, gt=0)


class SearchResult(BaseModel):
    """One parsed search hit. Positions start at 1."""

    model_config = ConfigDict(extra="forbid")

    title: str
    url: str
    position: int = Field(..., ge=1)
    snippet: str | None = None
    thumbnail: str | None = None
    display_url: str | None = None
    date: str | None = None
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SearchResponse(BaseModel):
    """Results for one query."""

    query: str
    engine: SearchEngine
    results: list[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    search_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "engine": self.engine.value,
            "results": [r.to_dict() for r in self.results],
            "total_results": self.total_results,
            "search_time_ms": self.search_time_ms,
        }

