"""Pipeline orchestrator - coordinates capture, diff, aggregation and reporting."""

from __future__ import annotations

import asyncio
import json
import logging
import multiprocessing
import signal
import time
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from playwright.async_api import BrowserContext, async_playwright

from screenshot_comparator.capture.renderer import (
    PageRenderer,
    browser_session,
    launch_browser,
    load_manifest,
)
from screenshot_comparator.compare.aggregator import evaluate_pair
from screenshot_comparator.compare.ignore_list import IgnoreList
from screenshot_comparator.models.comparison import (
    ComparisonOutcome,
    FailedPage,
    OutcomeRecord,
    Side,
    SideCapture,
    UrlPair,
)
from screenshot_comparator.models.config import ComparatorConfig
from screenshot_comparator.reporter.reporter import Reporter, summarize
from screenshot_comparator.scheduler.pool import WorkerPool
from screenshot_comparator.scheduler.retry import RetryPolicy
from screenshot_comparator.url_utils import build_url_pairs, get_file_name, load_url_list, resolved_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactLayout:
    """Output paths of one URL pair. Folder names are derived from the URL so workers never collide."""
    output_dir: Path
    file_name: str

    def side_dir(self, side: Side) -> Path:
        return self.output_dir / side.value / self.file_name

    @property
    def diff_dir(self) -> Path:
        return self.output_dir / "diff" / self.file_name

    @property
    def result_path(self) -> Path:
        return self.output_dir / "results" / f"{self.file_name}.json"


def save_outcome(path: Path, outcome: ComparisonOutcome) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(OutcomeRecord(outcome=outcome).model_dump(mode="json"), f, indent=2)


def load_outcome(path: Path) -> ComparisonOutcome | None:
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return OutcomeRecord.model_validate(json.load(f)).outcome
    except Exception as e:
        logger.warning("Ignoring unreadable result %s: %s", path, e)
        return None


class Orchestrator:
    """Coordinates the full comparison pipeline for a list of URL pairs.

    Diffing is CPU-bound and runs on ``diff_executor`` so the event loop keeps
    serving the browser sessions and the per-task timeouts of the pool. When
    no executor is given, ``compare_all`` starts a process pool for the run.
    """

    def __init__(
        self,
        config: ComparatorConfig,
        ignore_list: IgnoreList | None = None,
        diff_executor: Executor | None = None,
    ):
        self.config = config
        self.output_dir = Path(config.output_dir)
        self.ignore_list = ignore_list if ignore_list is not None else IgnoreList.load(config.ignore_list_file)
        self.retry_policy = RetryPolicy.from_config(config.retry)
        self.diff_executor = diff_executor
        self.pool: WorkerPool | None = None

    def layout_for(self, pair: UrlPair) -> ArtifactLayout:
        file_name = get_file_name(pair.prod_url, self.config.prod_base_url, self.config.migrated_base_url)
        return ArtifactLayout(self.output_dir, file_name)

    def load_pairs(self, urls_file: str | Path | None = None) -> list[UrlPair]:
        """Read and validate the URL list. Malformed input aborts the run."""
        entries = load_url_list(urls_file or self.config.urls_file)
        pairs = build_url_pairs(entries, self.config.prod_base_url, self.config.migrated_base_url)
        logger.info("Loaded %d URL pairs", len(pairs))
        return pairs

    @staticmethod
    def failed(pair: UrlPair, reason: str) -> FailedPage:
        return FailedPage(pair=pair, reason=reason)

    # --- per pair ---------------------------------------------------------

    def _evaluate_args(self, pair: UrlPair, prod: SideCapture, migrated: SideCapture) -> tuple:
        return (
            pair, prod, migrated, self.layout_for(pair).diff_dir,
            self.ignore_list, self.config.diff_threshold, self.config.compare_media,
        )

    def evaluate(self, pair: UrlPair, prod: SideCapture, migrated: SideCapture) -> ComparisonOutcome:
        """Diff and aggregate two captured sides of a URL pair in this process."""
        return evaluate_pair(*self._evaluate_args(pair, prod, migrated))

    async def evaluate_async(self, pair: UrlPair, prod: SideCapture, migrated: SideCapture) -> ComparisonOutcome:
        """Like ``evaluate``, but off the event loop on ``diff_executor``."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.diff_executor, evaluate_pair, *self._evaluate_args(pair, prod, migrated),
        )

    def resumed_outcome(self, pair: UrlPair) -> ComparisonOutcome | None:
        """Outcome of a previous run, when its result file is present."""
        if not self.config.resume:
            return None
        outcome = load_outcome(self.layout_for(pair).result_path)
        if outcome is not None:
            logger.info("Skipping %s: result already present", pair.relative_url)
        return outcome

    async def compare_pair(self, session: BrowserContext, pair: UrlPair) -> ComparisonOutcome:
        """Capture both sides of ``pair`` (unless already captured), diff, and persist the outcome."""
        layout = self.layout_for(pair)
        renderer = PageRenderer(session, self.config, self.retry_policy)
        captures: dict[Side, SideCapture] = {}
        for side, url in ((Side.PROD, pair.prod_url), (Side.MIGRATED, pair.migrated_url)):
            side_dir = layout.side_dir(side)
            capture = load_manifest(side_dir) if self.config.resume else None
            if capture is not None:
                logger.debug("Reusing %s capture of %s", side.value, url)
            elif side == Side.MIGRATED:
                # Regions are not captured once the migrated side lands elsewhere
                expected_path = resolved_path(captures[Side.PROD].final_url)
                capture = await renderer.capture_side(url, side, side_dir, expected_path=expected_path)
            else:
                capture = await renderer.capture_side(url, side, side_dir)
            captures[side] = capture

        outcome = await self.evaluate_async(pair, captures[Side.PROD], captures[Side.MIGRATED])
        save_outcome(layout.result_path, outcome)
        return outcome

    # --- batch ------------------------------------------------------------

    def run(self, pairs: list[UrlPair] | None = None) -> dict:
        """Execute the complete capture -> diff -> report pipeline."""
        return asyncio.run(self._run_pipeline(pairs))

    async def _run_pipeline(self, pairs: list[UrlPair] | None = None) -> dict:
        start = time.time()
        pairs = pairs if pairs is not None else self.load_pairs()
        logger.info("=== Comparing %d URL pairs with %d workers ===", len(pairs), self.config.num_workers)

        outcomes = await self.compare_all(pairs)
        reports = Reporter(self.config).generate_reports(outcomes, self.output_dir)

        duration = time.time() - start
        logger.info("=== Pipeline complete in %.1fs ===", duration)
        return {
            "duration": round(duration, 2),
            "results": summarize(outcomes),
            "reports": reports,
        }

    async def compare_all(self, pairs: list[UrlPair]) -> list[ComparisonOutcome]:
        """Fan ``pairs`` out over the worker pool, one browser session per worker."""
        outcomes: list[ComparisonOutcome] = []
        pending: list[UrlPair] = []
        for pair in pairs:
            previous = self.resumed_outcome(pair)
            if previous is not None:
                outcomes.append(previous)
            else:
                pending.append(pair)
        if not pending:
            return outcomes

        owns_executor = self.diff_executor is None
        if owns_executor:
            self.diff_executor = ProcessPoolExecutor(
                max_workers=self.config.num_workers,
                mp_context=multiprocessing.get_context("spawn"),
            )
        try:
            async with async_playwright() as p:
                browser = await launch_browser(p)
                self.pool = WorkerPool(
                    num_workers=self.config.num_workers,
                    task_timeout=self.config.task_timeout_seconds,
                    session_factory=lambda: browser_session(browser, self.config),
                    on_failure=self.failed,
                    max_respawns=self.config.max_respawns,
                )
                signals = self._install_stop_handlers(self.pool)
                try:
                    outcomes.extend(await self.pool.run(pending, self.compare_pair))
                finally:
                    loop = asyncio.get_running_loop()
                    for sig in signals:
                        loop.remove_signal_handler(sig)
                    await browser.close()
        finally:
            if owns_executor:
                # Diffs of timed-out tasks may still be running; they are abandoned
                self.diff_executor.shutdown(wait=False, cancel_futures=True)
                self.diff_executor = None
        return outcomes

    @staticmethod
    def _install_stop_handlers(pool: WorkerPool) -> list[signal.Signals]:
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, pool.stop)
            except (NotImplementedError, RuntimeError):
                # Not supported by this event loop (e.g. Windows, non-main thread)
                continue
            installed.append(sig)
        return installed

    def diff_only(self, pairs: list[UrlPair] | None = None) -> dict:
        """Re-diff existing captures without a browser. Pairs lacking captures are reported as failed."""
        start = time.time()
        pairs = pairs if pairs is not None else self.load_pairs()
        outcomes: list[ComparisonOutcome] = []
        for pair in pairs:
            layout = self.layout_for(pair)
            prod = load_manifest(layout.side_dir(Side.PROD))
            migrated = load_manifest(layout.side_dir(Side.MIGRATED))
            if prod is None or migrated is None:
                logger.error("No captures for %s, run the capture step first", pair.relative_url)
                outcomes.append(self.failed(pair, "captures missing"))
                continue
            outcome = self.evaluate(pair, prod, migrated)
            save_outcome(layout.result_path, outcome)
            outcomes.append(outcome)

        reports = Reporter(self.config).generate_reports(outcomes, self.output_dir)
        return {
            "duration": round(time.time() - start, 2),
            "results": summarize(outcomes),
            "reports": reports,
        }
