"""Comparison data structures: URL pairs, region images, component and page results."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

HEADER = "header"
FOOTER = "footer"


class SeverityTag(str, Enum):
    NOT_COMPARED = "not compared"
    PERFECT_MATCH = "perfect-match"
    MINOR_DIFF = "minor-diff"
    MEDIUM_DIFF = "medium-diff"
    MAJOR_DIFF = "major-diff"
    CRITICAL_DIFF = "critical-diff"
    MISSING_IN_MIGRATED = "missing-in-migrated"
    EXTRA_IN_MIGRATED = "extra-in-migrated"
    REDIRECT_URL_MISMATCH = "redirect-url-mismatch"
    IGNORED_DIFF = "ignored-diff"


class Side(str, Enum):
    PROD = "prod"
    MIGRATED = "migrated"


class UrlPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    relative_url: str
    prod_url: str
    migrated_url: str


class RegionImage(BaseModel):
    """A captured region of one side. ``path is None`` means the region was not captured."""
    region: str
    side: Side
    path: Optional[str] = None  # PNG file path
    height: int = Field(default=0, ge=0)

    @property
    def absent(self) -> bool:
        return self.path is None


class SideCapture(BaseModel):
    """Everything captured from one environment for one URL."""
    url: str
    final_url: str
    regions: list[RegionImage] = Field(default_factory=list)
    blocked_media: list[str] = Field(default_factory=list)

    def region_map(self) -> dict[str, RegionImage]:
        return {r.region: r for r in self.regions}


class ComponentResult(BaseModel):
    component: str
    mismatch_percent: Optional[float] = None  # None = not compared
    match: bool = False
    tag: SeverityTag = SeverityTag.NOT_COMPARED
    diff_image: Optional[str] = None
    log: Optional[str] = None
    height: Optional[int] = None  # weight used for the page-level average
    prod_image: Optional[str] = None
    migrated_image: Optional[str] = None

    @property
    def is_header(self) -> bool:
        return self.component == HEADER

    @property
    def is_footer(self) -> bool:
        return self.component == FOOTER

    @property
    def is_body(self) -> bool:
        return not (self.is_header or self.is_footer)

    @property
    def failing(self) -> bool:
        # Regions that could not be measured on either side are reported, not failed
        return not self.match and self.tag != SeverityTag.NOT_COMPARED


class PageResult(BaseModel):
    url: str
    overall_mismatch: Optional[float] = None
    overall_tag: SeverityTag = SeverityTag.NOT_COMPARED
    components: list[ComponentResult] = Field(default_factory=list)
    redirect_mismatch: bool = False

    def failing_components(self) -> list[ComponentResult]:
        return [c for c in self.components if c.failing]

    def body_components(self) -> list[ComponentResult]:
        return [c for c in self.components if c.is_body]

    def body_failing(self) -> bool:
        """Pass/fail verdict computed over body regions only."""
        return any(c.failing for c in self.body_components())

    def component(self, name: str) -> ComponentResult | None:
        for c in self.components:
            if c.component == name:
                return c
        return None


class IgnoreRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    component: str
    percents: float


class MediaComparison(BaseModel):
    """Blocked/filtered media file names per side and their set difference."""
    prod: list[str] = Field(default_factory=list)
    migrated: list[str] = Field(default_factory=list)
    mismatch_percent: float = 0.0

    @property
    def only_in_prod(self) -> list[str]:
        return sorted(set(self.prod) - set(self.migrated))

    @property
    def only_in_migrated(self) -> list[str]:
        return sorted(set(self.migrated) - set(self.prod))


class ComparedPage(BaseModel):
    kind: Literal["ok"] = "ok"
    pair: UrlPair
    page: PageResult
    media: Optional[MediaComparison] = None


class RedirectMismatch(BaseModel):
    kind: Literal["redirect-mismatch"] = "redirect-mismatch"
    pair: UrlPair
    page: PageResult
    prod_final_url: str
    migrated_final_url: str


class FailedPage(BaseModel):
    kind: Literal["failed"] = "failed"
    pair: UrlPair
    reason: str


ComparisonOutcome = Annotated[
    Union[ComparedPage, RedirectMismatch, FailedPage],
    Field(discriminator="kind"),
]


class OutcomeRecord(BaseModel):
    """Wrapper used to (de)serialize a single outcome to disk."""
    outcome: ComparisonOutcome
