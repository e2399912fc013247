"""Page rendering: browser sessions, navigation and per-side region capture."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional
from urllib.parse import unquote, urlparse

from playwright.async_api import Browser, BrowserContext, Page, Playwright

from screenshot_comparator.capture.region_capturer import capture_region
from screenshot_comparator.capture.segmenter import segment_page
from screenshot_comparator.errors import CaptureError
from screenshot_comparator.models.comparison import SideCapture, Side
from screenshot_comparator.models.config import ComparatorConfig
from screenshot_comparator.scheduler.retry import RetryPolicy
from screenshot_comparator.url_utils import resolved_path

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

MANIFEST_NAME = "capture.json"

_MEDIA_RESOURCE_TYPES = {"image", "media"}

_FREEZE_CSS = """
*, *::before, *::after {
    animation-duration: 0s !important;
    animation-delay: 0s !important;
    animation-iteration-count: 1 !important;
    transition-duration: 0s !important;
    transition-delay: 0s !important;
    caret-color: transparent !important;
    scroll-behavior: auto !important;
}
"""


async def launch_browser(playwright: Playwright, headless: bool = True) -> Browser:
    """Launch the Chromium instance shared by all worker sessions."""
    return await playwright.chromium.launch(headless=headless)


async def create_session(browser: Browser, config: ComparatorConfig) -> BrowserContext:
    """Create a browser context configured for screenshot comparison."""
    context = await browser.new_context(
        viewport={"width": config.viewport.width, "height": config.viewport.height},
        user_agent=config.user_agent or DEFAULT_USER_AGENT,
        locale="en-US",
        timezone_id="America/New_York",
        reduced_motion="reduce",
    )
    context.set_default_navigation_timeout(config.navigation_attempt_timeout_ms())
    return context


@asynccontextmanager
async def browser_session(browser: Browser, config: ComparatorConfig) -> AsyncIterator[BrowserContext]:
    """One reusable session per worker; closed when the worker exits or is recycled."""
    context = await create_session(browser, config)
    try:
        yield context
    finally:
        try:
            await context.close()
        except Exception as e:
            logger.debug("Closing browser context failed: %s", e)


async def freeze_animations(page: Page) -> None:
    """Stop CSS animations and transitions so repeated captures are stable."""
    await page.add_style_tag(content=_FREEZE_CSS)


def media_file_name(url: str) -> str:
    path = urlparse(url).path
    return unquote(path.rsplit("/", 1)[-1]) or path


class MediaCollector:
    """Records media requests that were blocked, failed, or answered with an error status."""

    def __init__(self):
        self.blocked: set[str] = set()

    def setup_listeners(self, page: Page) -> None:
        page.on("requestfailed", self._on_request_failed)
        page.on("response", self._on_response)

    def _on_request_failed(self, request) -> None:
        if request.resource_type in _MEDIA_RESOURCE_TYPES:
            self.blocked.add(media_file_name(request.url))

    def _on_response(self, response) -> None:
        if response.request.resource_type in _MEDIA_RESOURCE_TYPES and response.status >= 400:
            self.blocked.add(media_file_name(response.url))

    def file_names(self) -> list[str]:
        return sorted(self.blocked)


def load_manifest(side_dir: Path) -> Optional[SideCapture]:
    """Load a previously written side manifest, if its images are all still on disk."""
    path = side_dir / MANIFEST_NAME
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            capture = SideCapture.model_validate(json.load(f))
    except Exception as e:
        logger.warning("Ignoring unreadable capture manifest %s: %s", path, e)
        return None
    for region in capture.regions:
        if region.path and not Path(region.path).exists():
            logger.info("Capture manifest %s references a missing image, recapturing", path)
            return None
    return capture


def save_manifest(side_dir: Path, capture: SideCapture) -> None:
    side_dir.mkdir(parents=True, exist_ok=True)
    with open(side_dir / MANIFEST_NAME, "w", encoding="utf-8") as f:
        json.dump(capture.model_dump(mode="json"), f, indent=2)


class PageRenderer:
    """Renders one side of a URL pair inside a worker's browser session."""

    def __init__(self, context: BrowserContext, config: ComparatorConfig, retry_policy: RetryPolicy):
        self.context = context
        self.config = config
        self.retry_policy = retry_policy

    async def _open(self, url: str, side: Side) -> Page:
        page = await self.context.new_page()
        if side == Side.MIGRATED and self.config.bypass_headers:
            await page.set_extra_http_headers(self.config.bypass_headers)
        return page

    async def capture_side(
        self,
        url: str,
        side: Side,
        side_dir: Path,
        expected_path: str | None = None,
    ) -> SideCapture:
        """Navigate to ``url`` and capture every segmented region into ``side_dir``.

        When ``expected_path`` is given and navigation resolves to a different
        path, no region is captured: the pair is a redirect mismatch.
        """
        page = await self._open(url, side)
        collector = MediaCollector()
        collector.setup_listeners(page)
        try:
            response = await self.retry_policy.call(
                lambda: page.goto(url, wait_until="networkidle",
                                  timeout=self.config.navigation_attempt_timeout_ms()),
                description=f"Navigation to {url}",
            )
            if response is not None and response.status >= 400:
                logger.warning("%s answered with HTTP %d", url, response.status)
            if expected_path is not None and resolved_path(page.url) != expected_path:
                logger.warning("%s resolved to %s, expected %s; skipping region capture",
                               url, page.url, expected_path)
                regions = []
            else:
                await freeze_animations(page)
                regions = await segment_page(page)
            images = []
            for region in regions:
                images.append(await capture_region(
                    page,
                    region,
                    side_dir / f"{region.name}.png",
                    side,
                    max_height=self.config.max_image_height,
                    settle_ms=self.config.settle_delay_ms,
                ))

            capture = SideCapture(
                url=url,
                final_url=page.url,
                regions=images,
                blocked_media=collector.file_names(),
            )
        except Exception as e:
            raise CaptureError(f"Capturing {side.value} {url} failed: {e}") from e
        finally:
            await page.close()

        save_manifest(side_dir, capture)
        logger.info("Captured %d regions of %s (%s)", len(capture.regions), url, side.value)
        return capture
