"""Splits a rendered page into header, body blocks and footer."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from playwright.async_api import Page

from screenshot_comparator.models.comparison import HEADER

logger = logging.getLogger(__name__)

REGION_ATTR = "data-vr-region"
FIXED_ATTR = "data-vr-fixed"

_SEGMENT_SCRIPT = """([regionAttr, fixedAttr]) => {
    for (const el of document.querySelectorAll(`[${regionAttr}]`)) el.removeAttribute(regionAttr);
    for (const el of document.querySelectorAll(`[${fixedAttr}]`)) el.removeAttribute(fixedAttr);

    // Every fixed element is hidden while other regions are captured
    for (const el of document.body.querySelectorAll('*')) {
        if (getComputedStyle(el).position === 'fixed') el.setAttribute(fixedAttr, '');
    }

    const header = document.querySelector('header, [role="banner"]');
    const footer = document.querySelector('footer, [role="contentinfo"]');
    const skipTags = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE', 'LINK']);
    const names = [];

    if (header) {
        header.setAttribute(regionAttr, 'header');
        names.push('header');
    }

    let walked = false;
    if (header && footer) {
        walked = true;
        let index = 0;
        for (let el = header.nextElementSibling; el && el !== footer; el = el.nextElementSibling) {
            if (skipTags.has(el.tagName)) continue;
            if (getComputedStyle(el).position === 'fixed') continue;
            const name = String(index).padStart(3, '0');
            el.setAttribute(regionAttr, name);
            names.push(name);
            index++;
        }
    }

    if (footer) {
        footer.setAttribute(regionAttr, 'footer');
        names.push('footer');
    }

    return { names, hasHeader: !!header, hasFooter: !!footer, walked };
}"""


@dataclass(frozen=True)
class RegionDescriptor:
    name: str
    selector: str

    @property
    def is_header(self) -> bool:
        return self.name == HEADER


def region_selector(name: str) -> str:
    return f'[{REGION_ATTR}="{name}"]'


async def segment_page(page: Page) -> list[RegionDescriptor]:
    """Mark and return the comparable regions of a page in document order.

    Body blocks are only discovered between a header and a footer landmark.
    Pages lacking either landmark degrade to header and/or footer regions.
    """
    info = await page.evaluate(_SEGMENT_SCRIPT, [REGION_ATTR, FIXED_ATTR])
    if not info.get("walked"):
        logger.warning(
            "No %s found on %s; body regions are not segmented",
            "header" if not info.get("hasHeader") else "footer", page.url,
        )
    regions = [RegionDescriptor(name=n, selector=region_selector(n)) for n in info.get("names", [])]
    logger.debug("Segmented %s into %d regions: %s", page.url, len(regions),
                 ", ".join(r.name for r in regions))
    return regions
