"""HTML report generator with prod, migrated and diff images per region."""

from __future__ import annotations

import html
import logging
import os
from pathlib import Path

from screenshot_comparator.models.comparison import (
    ComparedPage,
    ComparisonOutcome,
    ComponentResult,
    FailedPage,
    RedirectMismatch,
)

logger = logging.getLogger(__name__)


def _image_src(path: str | None, report_dir: Path) -> str:
    """Path of an image relative to the report, or empty string when absent."""
    if not path:
        return ""
    try:
        return Path(os.path.relpath(Path(path).resolve(), report_dir.resolve())).as_posix()
    except ValueError:
        # Different drive on Windows
        return Path(path).resolve().as_uri()


def _image_cell(path: str | None, report_dir: Path, empty: str) -> str:
    src = _image_src(path, report_dir)
    if not src:
        return f'<td class="empty">{empty}</td>'
    return f'<td><img src="{html.escape(src)}" loading="lazy" onclick="this.classList.toggle(\'zoomed\')"/></td>'


def _component_row(c: ComponentResult, report_dir: Path) -> str:
    status = "pass" if not c.failing else "fail"
    mismatch = "-" if c.mismatch_percent is None else f"{c.mismatch_percent:g}%"
    log = f'<div class="log">{html.escape(c.log)}</div>' if c.log else ""
    return f'''
      <tr class="row-{status}">
        <td><strong>{html.escape(c.component)}</strong>{log}</td>
        {_image_cell(c.prod_image, report_dir, "Missing")}
        {_image_cell(c.migrated_image, report_dir, "Missing")}
        {_image_cell(c.diff_image, report_dir, "No Difference")}
        <td>{mismatch}</td>
        <td><span class="badge {status}">{html.escape(c.tag.value)}</span></td>
      </tr>'''


def _build_page_card(outcome: ComparisonOutcome, report_dir: Path) -> str:
    if isinstance(outcome, FailedPage):
        return f'''
    <div class="page-card" data-status="error">
      <div class="page-header"><span class="badge error">ERROR</span>
        <strong>{html.escape(outcome.pair.relative_url)}</strong></div>
      <div class="failure-banner"><strong>Comparison failed:</strong> {html.escape(outcome.reason)}</div>
    </div>'''

    if isinstance(outcome, RedirectMismatch):
        return f'''
    <div class="page-card" data-status="fail">
      <div class="page-header"><span class="badge fail">{html.escape(outcome.page.overall_tag.value)}</span>
        <strong>{html.escape(outcome.pair.relative_url)}</strong></div>
      <div class="failure-banner"><strong>Redirect mismatch:</strong>
        prod &rarr; {html.escape(outcome.prod_final_url)},
        migrated &rarr; {html.escape(outcome.migrated_final_url)}</div>
    </div>'''

    if not isinstance(outcome, ComparedPage):
        raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")

    page = outcome.page
    status = "fail" if page.body_failing() else "pass"
    overall = "-" if page.overall_mismatch is None else f"{page.overall_mismatch:g}%"
    rows = "".join(_component_row(c, report_dir) for c in page.components)
    return f'''
    <div class="page-card" data-status="{status}">
      <div class="page-header"><span class="badge {status}">{html.escape(page.overall_tag.value)}</span>
        <strong>{html.escape(page.url)}</strong>
        <span class="meta">Overall mismatch: {overall}</span></div>
      <table>
        <tr><th>Component</th><th>Production</th><th>Migrated</th><th>Difference</th><th>Mismatch</th><th>Tag</th></tr>
        {rows}
      </table>
    </div>'''


def generate_html_report(outcomes: list[ComparisonOutcome], output_path: Path) -> None:
    """Write the visual comparison report. Images are referenced relative to the report."""
    report_dir = output_path.parent
    report_dir.mkdir(parents=True, exist_ok=True)

    passed = sum(1 for o in outcomes if isinstance(o, ComparedPage) and not o.page.body_failing())
    errors = sum(1 for o in outcomes if isinstance(o, FailedPage))
    failed = len(outcomes) - passed - errors
    cards = "".join(_build_page_card(o, report_dir) for o in outcomes)

    report_html = f'''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Visual Comparison Report</title>
<style>
  :root {{ --pass: #22c55e; --fail: #ef4444; --error: #f97316; --bg: #f8fafc; --card: white; --border: #e2e8f0; --text: #1e293b; --muted: #64748b; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: var(--bg); color: var(--text); margin: 20px; }}
  .summary {{ display: flex; gap: 0.8rem; margin-bottom: 1.5rem; }}
  .stat {{ background: var(--card); border-radius: 8px; padding: 1rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); text-align: center; min-width: 120px; }}
  .stat .value {{ font-size: 1.8rem; font-weight: 700; }}
  .stat.pass .value {{ color: var(--pass); }}
  .stat.fail .value {{ color: var(--fail); }}
  .stat.error .value {{ color: var(--error); }}
  .page-card {{ background: var(--card); border-radius: 8px; margin-bottom: 1rem; padding: 0.8rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); }}
  .page-header {{ display: flex; gap: 0.5rem; align-items: center; margin-bottom: 0.5rem; }}
  .meta {{ color: var(--muted); font-size: 0.85rem; }}
  .badge {{ display: inline-block; padding: 0.15rem 0.55rem; border-radius: 9999px; font-size: 0.7rem; font-weight: 600; white-space: nowrap; }}
  .badge.pass {{ background: #dcfce7; color: #166534; }}
  .badge.fail {{ background: #fecaca; color: #991b1b; }}
  .badge.error {{ background: #fed7aa; color: #9a3412; }}
  .failure-banner {{ background: #fef2f2; border: 1px solid #fecaca; color: #991b1b; border-radius: 6px; padding: 0.6rem 0.8rem; font-size: 0.88rem; }}
  table {{ border-collapse: collapse; width: 100%; }}
  th, td {{ border: 1px solid var(--border); padding: 8px; text-align: left; vertical-align: top; }}
  th {{ background-color: #f2f2f2; }}
  td.empty {{ color: var(--muted); font-style: italic; }}
  tr.row-fail td:first-child {{ border-left: 4px solid var(--fail); }}
  .log {{ color: var(--muted); font-size: 0.78rem; }}
  img {{ max-width: 300px; cursor: pointer; }}
  img.zoomed {{ position: fixed; top: 5%; left: 5%; max-width: 90%; max-height: 90%; object-fit: contain; z-index: 1000; background: rgba(0,0,0,0.85); padding: 1rem; }}
</style>
</head>
<body>
  <h1>Visual Comparison Report</h1>
  <div class="summary">
    <div class="stat"><div class="value">{len(outcomes)}</div><div>Pages</div></div>
    <div class="stat pass"><div class="value">{passed}</div><div>Passed</div></div>
    <div class="stat fail"><div class="value">{failed}</div><div>Failed</div></div>
    <div class="stat error"><div class="value">{errors}</div><div>Errors</div></div>
  </div>
  {cards}
</body>
</html>'''

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report_html)
    logger.debug("Wrote HTML report with %d pages to %s", len(outcomes), output_path)
