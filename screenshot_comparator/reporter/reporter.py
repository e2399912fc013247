"""Report generation orchestration."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path

from screenshot_comparator.models.comparison import (
    ComparedPage,
    ComparisonOutcome,
    FailedPage,
    RedirectMismatch,
    SeverityTag,
)
from screenshot_comparator.models.config import ComparatorConfig

from .html_report import generate_html_report
from .json_report import generate_json_report
from .junit_report import generate_junit_reports

logger = logging.getLogger(__name__)


def summarize(outcomes: list[ComparisonOutcome]) -> dict:
    """Counts used by the CLI summary table and the JSON report."""
    passed = failed = redirects = errors = 0
    header_failures = footer_failures = ignored = 0
    tags: Counter[str] = Counter()

    for outcome in outcomes:
        if isinstance(outcome, FailedPage):
            errors += 1
            tags[SeverityTag.NOT_COMPARED.value] += 1
            continue
        tags[outcome.page.overall_tag.value] += 1
        if isinstance(outcome, RedirectMismatch):
            redirects += 1
            failed += 1
            continue
        page = outcome.page
        if page.body_failing():
            failed += 1
        else:
            passed += 1
        for c in page.components:
            if c.tag == SeverityTag.IGNORED_DIFF:
                ignored += 1
            elif c.failing and c.is_header:
                header_failures += 1
            elif c.failing and c.is_footer:
                footer_failures += 1

    return {
        "total": len(outcomes),
        "passed": passed,
        "failed": failed,
        "redirects": redirects,
        "errors": errors,
        "header_failures": header_failures,
        "footer_failures": footer_failures,
        "ignored": ignored,
        "tags": dict(tags),
    }


class Reporter:
    """Generates reports from comparison outcomes."""

    def __init__(self, config: ComparatorConfig):
        self.config = config

    def generate_reports(
        self,
        outcomes: list[ComparisonOutcome],
        output_dir: Path | None = None,
    ) -> dict[str, str]:
        """Generate all configured report formats. Returns format -> file path."""
        out_dir = output_dir or Path(self.config.output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        generated = {}
        # Completion order is arbitrary; reports are ordered by URL
        outcomes = sorted(outcomes, key=lambda o: o.pair.relative_url)
        logger.debug("Report output directory: %s", out_dir)

        if "junit" in self.config.report_formats:
            logger.debug("Generating JUnit reports...")
            for suite, path in generate_junit_reports(
                outcomes, out_dir, include_media=self.config.compare_media,
            ).items():
                generated[f"junit-{suite}"] = path
                logger.info("JUnit %s report: %s", suite, path)

        if "html" in self.config.report_formats:
            path = out_dir / "report.html"
            logger.debug("Generating HTML report...")
            generate_html_report(outcomes, path)
            generated["html"] = str(path)
            logger.info("HTML report: %s", path)

        if "json" in self.config.report_formats:
            path = out_dir / "report.json"
            logger.debug("Generating JSON report...")
            generate_json_report(outcomes, summarize(outcomes), path)
            generated["json"] = str(path)
            logger.info("JSON report: %s", path)

        return generated
