"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter

from screenshot_comparator.models.comparison import ComparisonOutcome

_OUTCOMES = TypeAdapter(list[ComparisonOutcome])


def generate_json_report(
    outcomes: list[ComparisonOutcome],
    summary: dict,
    output_path: Path,
) -> None:
    """Write a machine-readable JSON report."""
    report = {
        "summary": summary,
        "outcomes": _OUTCOMES.dump_python(outcomes, mode="json"),
    }
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, default=str)
