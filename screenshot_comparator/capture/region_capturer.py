"""Screenshots one segmented region, isolated from overlapping elements."""

from __future__ import annotations

import asyncio
import io
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from PIL import Image
from playwright.async_api import Page

from screenshot_comparator.capture.segmenter import FIXED_ATTR, REGION_ATTR, RegionDescriptor
from screenshot_comparator.models.comparison import RegionImage, Side

logger = logging.getLogger(__name__)

HIDDEN_ATTR = "data-vr-hidden"

_HIDE_SCRIPT = """([regionName, regionAttr, fixedAttr, hiddenAttr]) => {
    const region = document.querySelector(`[${regionAttr}="${regionName}"]`);
    const targets = [...document.querySelectorAll(`[${fixedAttr}]`)];
    if (regionName !== 'header') {
        const header = document.querySelector(`[${regionAttr}="header"]`);
        if (header) targets.push(header);
    }
    let hidden = 0;
    for (const el of targets) {
        if (!region || el === region || el.contains(region) || region.contains(el)) continue;
        if (el.hasAttribute(hiddenAttr)) continue;
        el.setAttribute(hiddenAttr, el.style.visibility || '');
        el.style.visibility = 'hidden';
        hidden++;
    }
    return hidden;
}"""

_RESTORE_SCRIPT = """(hiddenAttr) => {
    for (const el of document.querySelectorAll(`[${hiddenAttr}]`)) {
        el.style.visibility = el.getAttribute(hiddenAttr);
        el.removeAttribute(hiddenAttr);
    }
}"""

_WAIT_IMAGES_SCRIPT = """(el) => Promise.all(
    [...el.querySelectorAll('img')].map(img => img.complete ? null : new Promise(resolve => {
        img.addEventListener('load', resolve, { once: true });
        img.addEventListener('error', resolve, { once: true });
    }))
)"""


@asynccontextmanager
async def isolate_region(page: Page, region_name: str) -> AsyncIterator[int]:
    """Hide fixed elements and the header while a region is captured.

    Visibility is restored on exit, even when the capture fails.
    """
    hidden = await page.evaluate(_HIDE_SCRIPT, [region_name, REGION_ATTR, FIXED_ATTR, HIDDEN_ATTR])
    try:
        yield hidden
    finally:
        await page.evaluate(_RESTORE_SCRIPT, HIDDEN_ATTR)


def crop_to_max_height(image_bytes: bytes, max_height: int) -> tuple[bytes, int]:
    """Keep the top ``max_height`` pixels of a PNG. Returns the PNG bytes and final height."""
    with Image.open(io.BytesIO(image_bytes)) as img:
        if img.height <= max_height:
            return image_bytes, img.height
        cropped = img.crop((0, 0, img.width, max_height))
        buf = io.BytesIO()
        cropped.save(buf, format="PNG")
        return buf.getvalue(), max_height


async def capture_region(
    page: Page,
    region: RegionDescriptor,
    output_path: Path,
    side: Side,
    max_height: int = 9000,
    settle_ms: int = 500,
    image_timeout_ms: int = 10000,
) -> RegionImage:
    """Capture one region to ``output_path``. Zero-area regions are skipped."""
    locator = page.locator(region.selector).first
    box = await locator.bounding_box()
    if not box or box["width"] * box["height"] <= 0:
        logger.info("Skipping zero-size region %s on %s (%s)", region.name, page.url, side.value)
        return RegionImage(region=region.name, side=side, path=None, height=0)

    # Lazy-loaded media only starts loading once the region is on screen
    await locator.scroll_into_view_if_needed()
    await page.wait_for_timeout(settle_ms)
    try:
        await asyncio.wait_for(locator.evaluate(_WAIT_IMAGES_SCRIPT), image_timeout_ms / 1000)
    except asyncio.TimeoutError:
        logger.debug("Images in region %s did not settle within %dms", region.name, image_timeout_ms)

    async with isolate_region(page, region.name):
        image_bytes = await locator.screenshot(animations="disabled")

    image_bytes, height = crop_to_max_height(image_bytes, max_height)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(image_bytes)
    logger.debug("Captured %s (%s, %dpx) -> %s", region.name, side.value, height, output_path)
    return RegionImage(region=region.name, side=side, path=str(output_path), height=height)
