"""
Acquisition data model.

Options, results and batch shapes shared by every backend and orchestrator.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from crawlkit.utils.cancellation import CancellationToken
from crawlkit.utils.errors import AcquisitionError

WaitUntil = Literal["load", "domcontentloaded", "networkidle"]


# ============================================================================
# Extracted content
# ============================================================================


class Link(BaseModel):
    href: str
    text: str = ""
    title: str | None = None
    rel: str | None = None
    is_external: bool | None = None


class ExtractedImage(BaseModel):
    src: str
    alt: str | None = None
    title: str | None = None
    width: int | None = None
    height: int | None = None


class ExtractedVideo(BaseModel):
    src: str
    embed_url: str | None = None
    provider: str | None = None
    title: str | None = None
    thumbnail: str | None = None


class ExtractedAudio(BaseModel):
    src: str
    title: str | None = None


class ExtractedMedia(BaseModel):
    images: list[ExtractedImage] = Field(default_factory=list)
    videos: list[ExtractedVideo] = Field(default_factory=list)
    audio: list[ExtractedAudio] = Field(default_factory=list)


class PageMetadata(BaseModel):
    """Document-level metadata from <head>."""

    title: str | None = None
    description: str | None = None
    keywords: list[str] = Field(default_factory=list)
    author: str | None = None
    published_time: str | None = None
    modified_time: str | None = None
    og_title: str | None = None
    og_description: str | None = None
    og_image: str | None = None
    og_type: str | None = None
    twitter_card: str | None = None
    canonical: str | None = None
    lang: str | None = None
    structured_data: list[dict[str, Any]] = Field(default_factory=list)


# ============================================================================
# Requests and options
# ============================================================================


class CacheValidators(BaseModel):
    """Response validators used for conditional requests."""

    model_config = ConfigDict(frozen=True)

    etag: str | None = None
    last_modified: str | None = None

    @property
    def empty(self) -> bool:
        return not (self.etag or self.last_modified)

    def to_request_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.etag:
            headers["If-None-Match"] = self.etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers


class AcquisitionOptions(BaseModel):
    """
    Options for a single acquisition.

    ``wait_until`` of None lets each backend apply its own default: browser
    backends wait for network idle, request backends ignore it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout: float = Field(default=30.0, gt=0, description="Seconds per attempt")
    wait_until: WaitUntil | None = None
    wait_for_selector: str | None = None
    script: str | None = Field(default=None, description="JavaScript run after load")
    use_cache: bool = True
    extract_links: bool = True
    extract_media: bool = True
    extract_metadata: bool = True
    prefer_browser: bool = False
    fallback_allowed: bool = True
    headers: dict[str, str] = Field(default_factory=dict)
    validators: CacheValidators | None = None

    @property
    def requires_browser(self) -> bool:
        return self.prefer_browser or self.wait_until == "networkidle"


class AcquisitionRequest(BaseModel):
    """Immutable description of one submitted acquisition."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    url: str
    options: AcquisitionOptions = Field(default_factory=AcquisitionOptions)
    token: CancellationToken | None = None


# ============================================================================
# Results
# ============================================================================


class AcquisitionResult(BaseModel):
    """Structured page content returned by a backend."""

    url: str
    title: str = ""
    html: str = ""
    content: str = ""
    markdown: str = ""
    status_code: int | None = None
    content_type: str | None = None
    load_time_ms: float = 0.0
    links: list[Link] | None = None
    media: ExtractedMedia | None = None
    metadata: PageMetadata | None = None
    etag: str | None = None
    last_modified: str | None = None
    max_age: float | None = Field(default=None, description="From Cache-Control max-age")

    @property
    def validators(self) -> CacheValidators | None:
        if not (self.etag or self.last_modified):
            return None
        return CacheValidators(etag=self.etag, last_modified=self.last_modified)

    @property
    def not_modified(self) -> bool:
        return self.status_code == 304

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class BackendName(str, Enum):
    DIRECT = "direct"
    POOLED = "pooled"
    BROWSER = "browser"
    REMOTE_DEBUG = "remote_debug"


class AcquisitionResponse(BaseModel):
    """What the orchestrator hands back to callers."""

    result: AcquisitionResult
    cached: bool = False
    duration_ms: float = 0.0
    source: str = Field(..., description="Backend name or 'cache'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "result": self.result.to_dict(),
            "cached": self.cached,
            "duration_ms": self.duration_ms,
            "source": self.source,
        }


# ============================================================================
# Batches
# ============================================================================


class BatchOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    concurrency: int = Field(default=3, ge=1)
    retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0, description="Seconds, scaled by attempt")


class BatchFailure(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    target: str
    error: AcquisitionError
    attempts: int

    def to_dict(self) -> dict[str, Any]:
        return {"target": self.target, "attempts": self.attempts, **self.error.to_dict()}


class BatchResult(BaseModel):
    """
    Outcome of a windowed batch.

    Every scheduled target lands in exactly one of ``results`` or
    ``failures``; targets skipped by cancellation appear in neither.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    results: dict[str, Any] = Field(default_factory=dict)
    failures: dict[str, BatchFailure] = Field(default_factory=dict)
    total_duration_ms: float = 0.0
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": {
                k: v.to_dict() if hasattr(v, "to_dict") else v for k, v in self.results.items()
            },
            "failures": {k: f.to_dict() for k, f in self.failures.items()},
            "total_duration_ms": self.total_duration_ms,
            "cancelled": self.cancelled,
        }
