"""Severity classification of mismatch percentages."""

from __future__ import annotations

import math
from typing import Iterable, Optional

from screenshot_comparator.models.comparison import SeverityTag

# Ordering used when several tags are rolled up into one verdict.
_RANK = {
    SeverityTag.NOT_COMPARED: 0,
    SeverityTag.PERFECT_MATCH: 1,
    SeverityTag.IGNORED_DIFF: 2,
    SeverityTag.MINOR_DIFF: 3,
    SeverityTag.MEDIUM_DIFF: 4,
    SeverityTag.MAJOR_DIFF: 5,
    SeverityTag.CRITICAL_DIFF: 6,
    SeverityTag.EXTRA_IN_MIGRATED: 7,
    SeverityTag.MISSING_IN_MIGRATED: 8,
    SeverityTag.REDIRECT_URL_MISMATCH: 9,
}

STRUCTURAL_TAGS = frozenset({
    SeverityTag.MISSING_IN_MIGRATED,
    SeverityTag.EXTRA_IN_MIGRATED,
    SeverityTag.REDIRECT_URL_MISMATCH,
})

_PASSING_TAGS = frozenset({
    SeverityTag.NOT_COMPARED,
    SeverityTag.PERFECT_MATCH,
    SeverityTag.IGNORED_DIFF,
})


def classify(mismatch_percent: Optional[float]) -> SeverityTag:
    """Map a mismatch percentage to its severity tag. Upper bounds are inclusive."""
    if mismatch_percent is None:
        return SeverityTag.NOT_COMPARED
    if math.isnan(mismatch_percent):
        return SeverityTag.CRITICAL_DIFF
    if mismatch_percent <= 0:
        return SeverityTag.PERFECT_MATCH
    if mismatch_percent <= 1:
        return SeverityTag.MINOR_DIFF
    if mismatch_percent <= 5:
        return SeverityTag.MEDIUM_DIFF
    if mismatch_percent <= 20:
        return SeverityTag.MAJOR_DIFF
    return SeverityTag.CRITICAL_DIFF


def tag_rank(tag: SeverityTag) -> int:
    return _RANK[tag]


def worst_tag(tags: Iterable[SeverityTag]) -> SeverityTag:
    """Return the most severe tag, or ``not compared`` when there is none."""
    return max(tags, key=tag_rank, default=SeverityTag.NOT_COMPARED)


def is_failing_tag(tag: SeverityTag) -> bool:
    return tag not in _PASSING_TAGS
