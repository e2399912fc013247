"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from screenshot_comparator.models.comparison import (
    ComparedPage,
    ComponentResult,
    FailedPage,
    PageResult,
    RegionImage,
    Side,
    SideCapture,
    SeverityTag,
    UrlPair,
)
from screenshot_comparator.models.config import ComparatorConfig

PROD = "https://www.example.com"
MIGRATED = "https://new.example.com"


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def base_url_env(monkeypatch):
    """Default origins for configs built from the environment."""
    monkeypatch.setenv("PROD_WEBSITE_URL", PROD)
    monkeypatch.setenv("MIGRATED_WEBSITE_URL", MIGRATED)


@pytest.fixture
def config(tmp_path: Path) -> ComparatorConfig:
    """Create a test comparator configuration writing into a temp directory."""
    return ComparatorConfig(
        prod_base_url=PROD,
        migrated_base_url=MIGRATED,
        output_dir=str(tmp_path / "out"),
        num_workers=2,
        report_formats=["junit", "html", "json"],
    )


@pytest.fixture
def url_pair() -> UrlPair:
    return UrlPair(
        relative_url="/about",
        prod_url=f"{PROD}/about",
        migrated_url=f"{MIGRATED}/about",
    )


# ============================================================================
# Image Fixtures
# ============================================================================


@pytest.fixture
def make_png(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a solid PNG, optionally with a black band at the top."""

    def _make(
        name: str,
        size: tuple[int, int] = (10, 10),
        color: tuple[int, int, int] = (255, 255, 255),
        black_rows: int = 0,
    ) -> Path:
        path = tmp_path / "images" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        img = Image.new("RGB", size, color)
        for y in range(black_rows):
            for x in range(size[0]):
                img.putpixel((x, y), (0, 0, 0))
        img.save(path)
        return path

    return _make


def make_capture(url: str, regions: dict[str, tuple[Path | None, int]], side: Side,
                 final_url: str | None = None, blocked_media: list[str] | None = None) -> SideCapture:
    """Build a SideCapture from ``{region: (path, height)}``."""
    return SideCapture(
        url=url,
        final_url=final_url or url,
        regions=[
            RegionImage(region=name, side=side, path=str(path) if path else None, height=height)
            for name, (path, height) in regions.items()
        ],
        blocked_media=blocked_media or [],
    )


# ============================================================================
# Outcome Fixtures
# ============================================================================


def component(name: str, percent: float | None, tag: SeverityTag, height: int | None = 100,
              diff_image: str | None = None, log: str | None = None) -> ComponentResult:
    return ComponentResult(
        component=name,
        mismatch_percent=percent,
        match=percent == 0 or tag == SeverityTag.IGNORED_DIFF,
        tag=tag,
        height=height,
        diff_image=diff_image,
        log=log,
    )


@pytest.fixture
def passing_outcome(url_pair: UrlPair) -> ComparedPage:
    return ComparedPage(pair=url_pair, page=PageResult(
        url=url_pair.relative_url,
        overall_mismatch=0.0,
        overall_tag=SeverityTag.PERFECT_MATCH,
        components=[
            component("header", 0.0, SeverityTag.PERFECT_MATCH),
            component("000", 0.0, SeverityTag.PERFECT_MATCH),
            component("footer", 0.0, SeverityTag.PERFECT_MATCH),
        ],
    ))


@pytest.fixture
def failing_outcome() -> ComparedPage:
    pair = UrlPair(relative_url="/contact", prod_url=f"{PROD}/contact", migrated_url=f"{MIGRATED}/contact")
    return ComparedPage(pair=pair, page=PageResult(
        url="/contact",
        overall_mismatch=7.5,
        overall_tag=SeverityTag.MAJOR_DIFF,
        components=[
            component("header", 3.0, SeverityTag.MEDIUM_DIFF, diff_image="/tmp/diff/header.png"),
            component("000", 0.0, SeverityTag.PERFECT_MATCH),
            component("001", 15.0, SeverityTag.MAJOR_DIFF, diff_image="/tmp/diff/001.png"),
            component("footer", 0.0, SeverityTag.PERFECT_MATCH),
        ],
    ))


@pytest.fixture
def failed_outcome() -> FailedPage:
    pair = UrlPair(relative_url="/broken", prod_url=f"{PROD}/broken", migrated_url=f"{MIGRATED}/broken")
    return FailedPage(pair=pair, reason="timed out after 150s")
