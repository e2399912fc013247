"""Rolls component results up into one page-level verdict."""

from __future__ import annotations

import logging
from pathlib import Path

from screenshot_comparator.compare.ignore_list import IgnoreList
from screenshot_comparator.compare.image_differ import FULL_MISMATCH, compare_component
from screenshot_comparator.compare.media_diff import compare_media
from screenshot_comparator.compare.severity import STRUCTURAL_TAGS, classify, worst_tag
from screenshot_comparator.models.comparison import (
    ComparedPage,
    ComparisonOutcome,
    ComponentResult,
    PageResult,
    RedirectMismatch,
    SeverityTag,
    SideCapture,
    UrlPair,
)
from screenshot_comparator.url_utils import resolved_path

logger = logging.getLogger(__name__)


def is_redirect_mismatch(prod_final_url: str, migrated_final_url: str) -> bool:
    """True when both sides ended up on different paths after navigation."""
    return resolved_path(prod_final_url) != resolved_path(migrated_final_url)


def redirect_page(url: str, components: list[ComponentResult] | None = None) -> PageResult:
    return PageResult(
        url=url,
        overall_mismatch=FULL_MISMATCH,
        overall_tag=SeverityTag.REDIRECT_URL_MISMATCH,
        components=components or [],
        redirect_mismatch=True,
    )


def region_names(prod: SideCapture, migrated: SideCapture) -> list[str]:
    """Union of region names: prod order first, then migrated-only names."""
    names = [r.region for r in prod.regions]
    seen = set(names)
    for r in migrated.regions:
        if r.region not in seen:
            names.append(r.region)
            seen.add(r.region)
    return names


def compare_regions(
    url: str,
    prod: SideCapture,
    migrated: SideCapture,
    diff_dir: Path,
    ignore_list: IgnoreList | None = None,
    threshold: float = 0.1,
) -> list[ComponentResult]:
    """Diff every region of the union of both sides, matched by name."""
    prod_map = prod.region_map()
    migrated_map = migrated.region_map()
    results = []

    for name in region_names(prod, migrated):
        prod_img = prod_map.get(name)
        migrated_img = migrated_map.get(name)
        prod_path = Path(prod_img.path) if prod_img and prod_img.path else None
        migrated_path = Path(migrated_img.path) if migrated_img and migrated_img.path else None

        if prod_path is None and migrated_path is None:
            # Zero-area on both sides: nothing to measure
            results.append(ComponentResult(
                component=name,
                tag=SeverityTag.NOT_COMPARED,
                match=False,
                log="Region skipped on both sides (zero size)",
            ))
            continue

        result = compare_component(
            url,
            name,
            prod_path,
            migrated_path,
            migrated_img.height if migrated_img else None,
            diff_dir / f"{name}.png",
            ignore_list=ignore_list,
            threshold=threshold,
        )
        logger.debug("%s [%s]: %s%% (%s)", url, name, result.mismatch_percent, result.tag.value)
        results.append(result)

    return results


def weighted_mismatch(components: list[ComponentResult]) -> float | None:
    """Height-weighted mean of component mismatches, rounded to 2 decimals."""
    weighted_sum = 0.0
    total_height = 0
    for c in components:
        if not c.height or c.mismatch_percent is None:
            continue
        weighted_sum += c.mismatch_percent * c.height
        total_height += c.height
    if total_height == 0:
        return None
    return round(weighted_sum / total_height, 2)


def aggregate_page(url: str, components: list[ComponentResult]) -> PageResult:
    """Build the PageResult for a URL pair whose navigation did not diverge."""
    overall = weighted_mismatch(components)
    structural = [c.tag for c in components if c.tag in STRUCTURAL_TAGS]
    overall_tag = worst_tag([classify(overall), *structural])
    return PageResult(
        url=url,
        overall_mismatch=overall,
        overall_tag=overall_tag,
        components=components,
    )


def evaluate_pair(
    pair: UrlPair,
    prod: SideCapture,
    migrated: SideCapture,
    diff_dir: Path,
    ignore_list: IgnoreList | None = None,
    threshold: float = 0.1,
    include_media: bool = False,
) -> ComparisonOutcome:
    """Diff and aggregate both captured sides of a URL pair.

    CPU-bound and free of shared state, so it can run in a worker process.
    """
    if is_redirect_mismatch(prod.final_url, migrated.final_url):
        logger.warning("Redirect mismatch for %s: %s vs %s",
                       pair.relative_url, prod.final_url, migrated.final_url)
        return RedirectMismatch(
            pair=pair,
            page=redirect_page(pair.relative_url),
            prod_final_url=prod.final_url,
            migrated_final_url=migrated.final_url,
        )

    components = compare_regions(
        pair.relative_url, prod, migrated, diff_dir,
        ignore_list=ignore_list,
        threshold=threshold,
    )
    page = aggregate_page(pair.relative_url, components)
    media = compare_media(prod.blocked_media, migrated.blocked_media) if include_media else None
    logger.info("%s: %s%% (%s)", pair.relative_url, page.overall_mismatch, page.overall_tag.value)
    return ComparedPage(pair=pair, page=page, media=media)
