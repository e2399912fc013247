"""JUnit XML output. One suite for body regions, one each for headers and footers, one for media."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional

from screenshot_comparator.compare.image_differ import FULL_MISMATCH
from screenshot_comparator.compare.severity import classify, is_failing_tag, worst_tag
from screenshot_comparator.models.comparison import (
    FOOTER,
    HEADER,
    ComparedPage,
    ComparisonOutcome,
    ComponentResult,
    FailedPage,
    RedirectMismatch,
    SeverityTag,
)

logger = logging.getLogger(__name__)

BODY_SUITE = "visual-comparison-body"
MEDIA_SUITE = "visual-comparison-media"


def _fmt(value: Optional[float]) -> str:
    return "" if value is None else f"{value:g}"


def component_table(components: list[ComponentResult]) -> str:
    """Plain-text table of component mismatches, embedded in failures and system-out."""
    rows = [("Component", "Mismatch %", "Tag", "Match")]
    for c in components:
        rows.append((
            c.component,
            _fmt(c.mismatch_percent) or "-",
            c.tag.value,
            "yes" if c.match else "no",
        ))
    widths = [max(len(r[i]) for r in rows) for i in range(4)]
    lines = [" | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip() for row in rows]
    lines.insert(1, "-+-".join("-" * w for w in widths))
    return "\n".join(lines)


def attachment_markers(paths: list[str]) -> str:
    return "\n".join(f"[[ATTACHMENT|{p}]]" for p in paths)


class _Suite:
    def __init__(self, name: str):
        self.element = ET.Element("testsuite", name=name)
        self.tests = 0
        self.failures = 0
        self.errors = 0

    def add_case(
        self,
        name: str,
        tag: SeverityTag,
        mismatch: Optional[float],
        failure: Optional[str] = None,
        error: Optional[str] = None,
        output: str = "",
        extra_properties: dict[str, str] | None = None,
    ) -> ET.Element:
        case = ET.SubElement(self.element, "testcase", name=name, classname=tag.value)
        props = ET.SubElement(case, "properties")
        ET.SubElement(props, "property", name="mismatch", value=_fmt(mismatch))
        ET.SubElement(props, "property", name="tag", value=tag.value)
        for key, value in (extra_properties or {}).items():
            ET.SubElement(props, "property", name=key, value=value)

        self.tests += 1
        if error is not None:
            self.errors += 1
            el = ET.SubElement(case, "error", message=error.splitlines()[0] if error else "", type=tag.value)
            el.text = error
        elif failure is not None:
            self.failures += 1
            el = ET.SubElement(case, "failure", message=failure.splitlines()[0], type=tag.value)
            el.text = failure
        if output:
            ET.SubElement(case, "system-out").text = output
        return case

    def finish(self) -> ET.Element:
        self.element.set("tests", str(self.tests))
        self.element.set("failures", str(self.failures))
        self.element.set("errors", str(self.errors))
        self.element.set("skipped", "0")
        return self.element


def build_body_suite(outcomes: list[ComparisonOutcome]) -> ET.Element:
    """One test case per page; a page fails when any body region fails."""
    suite = _Suite(BODY_SUITE)
    for outcome in outcomes:
        if isinstance(outcome, FailedPage):
            suite.add_case(
                outcome.pair.relative_url, SeverityTag.NOT_COMPARED, FULL_MISMATCH,
                error=f"Comparison failed: {outcome.reason}",
            )
        elif isinstance(outcome, RedirectMismatch):
            detail = (f"Redirect mismatch: prod resolved to {outcome.prod_final_url}, "
                      f"migrated resolved to {outcome.migrated_final_url}")
            suite.add_case(
                outcome.pair.relative_url, outcome.page.overall_tag, outcome.page.overall_mismatch,
                failure=detail, output=detail,
            )
        elif isinstance(outcome, ComparedPage):
            page = outcome.page
            body = page.body_components()
            tag = worst_tag(c.tag for c in body)
            table = component_table(page.components)
            attachments = attachment_markers(
                [c.diff_image for c in body if c.diff_image and c.failing]
            )
            output = "\n\n".join(part for part in (table, attachments) if part)
            failure = None
            if page.body_failing():
                failing = [c.component for c in body if c.failing]
                failure = f"{len(failing)} body component(s) differ: {', '.join(failing)}\n\n{table}"
            suite.add_case(
                page.url, tag, page.overall_mismatch,
                failure=failure, output=output,
                extra_properties={"overall_tag": page.overall_tag.value},
            )
        else:
            raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")
    return suite.finish()


def build_component_suite(outcomes: list[ComparisonOutcome], component: str) -> ET.Element:
    """One test case per page for a shared region (``header`` or ``footer``)."""
    if component not in (HEADER, FOOTER):
        raise ValueError(f"Component suites exist for header and footer only, not {component!r}")
    suite = _Suite(f"visual-comparison-{component}")
    for outcome in outcomes:
        if not isinstance(outcome, ComparedPage):
            continue
        result = outcome.page.component(component)
        if result is None:
            continue
        failure = None
        if result.failing:
            failure = f"{component} differs on {outcome.page.url}: {_fmt(result.mismatch_percent)}% ({result.tag.value})"
            if result.log:
                failure += f"\n{result.log}"
        output = attachment_markers([result.diff_image] if result.diff_image else [])
        if result.log:
            output = f"{result.log}\n{output}" if output else result.log
        suite.add_case(
            outcome.page.url, result.tag, result.mismatch_percent,
            failure=failure, output=output,
        )
    return suite.finish()


def build_media_suite(outcomes: list[ComparisonOutcome]) -> ET.Element:
    """Blocked media file names compared per URL, scored by set difference."""
    suite = _Suite(MEDIA_SUITE)
    for outcome in outcomes:
        if not isinstance(outcome, ComparedPage) or outcome.media is None:
            continue
        media = outcome.media
        tag = classify(media.mismatch_percent)
        lines = []
        if media.only_in_prod:
            lines.append("Blocked only on prod: " + ", ".join(media.only_in_prod))
        if media.only_in_migrated:
            lines.append("Blocked only on migrated: " + ", ".join(media.only_in_migrated))
        detail = "\n".join(lines)
        suite.add_case(
            outcome.page.url, tag, media.mismatch_percent,
            failure=f"Blocked media differ on {outcome.page.url}\n{detail}" if is_failing_tag(tag) else None,
            output=detail,
        )
    return suite.finish()


def write_suite(suite: ET.Element, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tree = ET.ElementTree(suite)
    ET.indent(tree)
    tree.write(output_path, encoding="utf-8", xml_declaration=True)
    logger.debug("Wrote %s (%s tests, %s failures)", output_path, suite.get("tests"), suite.get("failures"))


def generate_junit_reports(
    outcomes: list[ComparisonOutcome],
    output_dir: Path,
    include_media: bool = False,
) -> dict[str, str]:
    """Write every suite to its own file. Returns suite name -> file path."""
    suites = {
        "body": build_body_suite(outcomes),
        HEADER: build_component_suite(outcomes, HEADER),
        FOOTER: build_component_suite(outcomes, FOOTER),
    }
    if include_media:
        suites["media"] = build_media_suite(outcomes)

    written = {}
    for name, suite in suites.items():
        path = output_dir / f"junit-{name}.xml"
        write_suite(suite, path)
        written[name] = str(path)
    return written
