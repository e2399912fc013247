"""Perceptual pixel comparison of one region across both sides."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image
from pixelmatch.contrib.PIL import pixelmatch

from screenshot_comparator.compare.ignore_list import IgnoreList
from screenshot_comparator.compare.severity import classify
from screenshot_comparator.models.comparison import ComponentResult, SeverityTag

logger = logging.getLogger(__name__)

FULL_MISMATCH = 100.0
PAD_COLOR = (255, 0, 255, 255)


@dataclass
class DiffOutcome:
    match: bool
    mismatch_percent: float
    diff_image: Optional[str] = None
    error: Optional[str] = None


def _pad(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    if image.size == size:
        return image
    # Must be opaque; pixelmatch blends transparent pixels onto white
    padded = Image.new("RGBA", size, PAD_COLOR)
    padded.paste(image, (0, 0))
    return padded


def _to_percent(mismatched: float, total: float) -> float:
    try:
        percent = mismatched / total * 100
    except ZeroDivisionError:
        percent = math.nan
    if math.isnan(percent):
        return FULL_MISMATCH
    return round(min(max(percent, 0.0), FULL_MISMATCH), 2)


def compare_images(
    prod_path: Path | None,
    migrated_path: Path | None,
    diff_path: Path,
    threshold: float = 0.1,
) -> DiffOutcome:
    """Compare two region images; either side may be absent, not both."""
    if prod_path is None and migrated_path is None:
        raise ValueError("compare_images needs at least one image")
    if prod_path is None or migrated_path is None:
        return DiffOutcome(match=False, mismatch_percent=FULL_MISMATCH)

    try:
        with Image.open(prod_path) as prod_raw, Image.open(migrated_path) as migrated_raw:
            prod_img = prod_raw.convert("RGBA")
            migrated_img = migrated_raw.convert("RGBA")

        # Size mismatches count as differences: pad both to the larger box
        size = (
            max(prod_img.width, migrated_img.width),
            max(prod_img.height, migrated_img.height),
        )
        prod_img = _pad(prod_img, size)
        migrated_img = _pad(migrated_img, size)

        diff = Image.new("RGBA", size)
        mismatched = pixelmatch(
            prod_img, migrated_img, diff,
            threshold=threshold,
            includeAA=False,
            diff_mask=True,
        )
        percent = _to_percent(mismatched, size[0] * size[1])
    except Exception as e:
        logger.error("Image comparison failed for %s: %s", prod_path, e)
        return DiffOutcome(match=False, mismatch_percent=FULL_MISMATCH, error=str(e))

    if percent > 0:
        diff_path.parent.mkdir(parents=True, exist_ok=True)
        diff.save(diff_path)
        return DiffOutcome(match=False, mismatch_percent=percent, diff_image=str(diff_path))
    return DiffOutcome(match=True, mismatch_percent=percent)


def compare_component(
    url: str,
    component: str,
    prod_path: Path | None,
    migrated_path: Path | None,
    migrated_height: int | None,
    diff_path: Path,
    ignore_list: IgnoreList | None = None,
    threshold: float = 0.1,
) -> ComponentResult:
    """Diff one region and classify it into a ComponentResult.

    The weight of a region is its migrated-side height. A region missing on
    the migrated side therefore carries no weight; one that only exists on the
    migrated side weighs in at full mismatch.
    """
    outcome = compare_images(prod_path, migrated_path, diff_path, threshold)

    if migrated_path is None:
        tag = SeverityTag.MISSING_IN_MIGRATED
        height = None
        log = f"Component '{component}' missing in migrated"
    elif prod_path is None:
        tag = SeverityTag.EXTRA_IN_MIGRATED
        height = migrated_height
        log = f"Component '{component}' not present in prod"
    else:
        tag = classify(outcome.mismatch_percent)
        height = migrated_height
        log = outcome.error

    result = ComponentResult(
        component=component,
        mismatch_percent=outcome.mismatch_percent,
        match=outcome.mismatch_percent == 0,
        tag=tag,
        diff_image=outcome.diff_image,
        log=log,
        height=height,
        prod_image=str(prod_path) if prod_path else None,
        migrated_image=str(migrated_path) if migrated_path else None,
    )

    if result.failing and ignore_list is not None:
        rule = ignore_list.match(url, component, result.mismatch_percent)
        if rule is not None:
            note = f"Ignored known difference ({tag.value}, {result.mismatch_percent}%)"
            logger.info("%s: %s %s", url, component, note)
            result.match = True
            result.tag = SeverityTag.IGNORED_DIFF
            result.log = f"{log}; {note}" if log else note

    return result
