"""Blocked-media comparison between both sides of a URL pair."""

from __future__ import annotations

from screenshot_comparator.models.comparison import MediaComparison


def compare_media(prod: list[str], migrated: list[str]) -> MediaComparison:
    """Set difference of blocked media file names as a percentage of their union."""
    prod_set = set(prod)
    migrated_set = set(migrated)
    union = prod_set | migrated_set
    if not union:
        percent = 0.0
    else:
        percent = round(len(prod_set ^ migrated_set) / len(union) * 100, 2)
    return MediaComparison(
        prod=sorted(prod_set),
        migrated=sorted(migrated_set),
        mismatch_percent=percent,
    )
