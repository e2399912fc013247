"""Tests for segmentation, region capture and page rendering."""

import io
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from screenshot_comparator.capture.region_capturer import (
    HIDDEN_ATTR,
    capture_region,
    crop_to_max_height,
    isolate_region,
)
from screenshot_comparator.capture.renderer import (
    MANIFEST_NAME,
    MediaCollector,
    PageRenderer,
    load_manifest,
    media_file_name,
    save_manifest,
)
from screenshot_comparator.capture.segmenter import RegionDescriptor, region_selector, segment_page
from screenshot_comparator.errors import CaptureError
from screenshot_comparator.models.comparison import RegionImage, Side, SideCapture
from screenshot_comparator.scheduler.retry import RetryPolicy


def _png_bytes(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 200, 200)).save(buf, format="PNG")
    return buf.getvalue()


def _make_page(box=None, screenshot=b"", names=None) -> MagicMock:
    """A Playwright page whose locators and scripts are mocked."""
    locator = MagicMock()
    locator.bounding_box = AsyncMock(return_value=box)
    locator.scroll_into_view_if_needed = AsyncMock()
    locator.evaluate = AsyncMock(return_value=None)
    locator.screenshot = AsyncMock(return_value=screenshot)

    page = MagicMock()
    page.url = "https://www.example.com/a"
    page.locator.return_value.first = locator
    page.wait_for_timeout = AsyncMock()
    page.evaluate = AsyncMock(return_value={
        "names": names or [], "hasHeader": True, "hasFooter": True, "walked": True,
    })
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.add_style_tag = AsyncMock()
    page.set_extra_http_headers = AsyncMock()
    page.close = AsyncMock()
    return page


class TestSegmenter:
    """Tests for segment_page()."""

    @pytest.mark.asyncio
    async def test_regions_in_document_order(self):
        page = _make_page(names=["header", "000", "001", "footer"])
        regions = await segment_page(page)
        assert [r.name for r in regions] == ["header", "000", "001", "footer"]
        assert regions[1].selector == region_selector("000") == '[data-vr-region="000"]'
        assert regions[0].is_header

    @pytest.mark.asyncio
    async def test_missing_footer_degrades(self):
        page = _make_page()
        page.evaluate.return_value = {"names": ["header"], "hasHeader": True, "hasFooter": False,
                                      "walked": False}
        regions = await segment_page(page)
        assert [r.name for r in regions] == ["header"]


class TestRegionCapturer:
    """Tests for region capture helpers."""

    def test_crop_keeps_short_images(self):
        data = _png_bytes(10, 50)
        assert crop_to_max_height(data, 100) == (data, 50)

    def test_crop_tall_images(self):
        cropped, height = crop_to_max_height(_png_bytes(10, 150), 100)
        assert height == 100
        with Image.open(io.BytesIO(cropped)) as img:
            assert img.size == (10, 100)

    @pytest.mark.asyncio
    async def test_isolation_restored_on_error(self):
        page = _make_page()
        with pytest.raises(RuntimeError):
            async with isolate_region(page, "000"):
                raise RuntimeError("screenshot failed")
        assert page.evaluate.await_count == 2
        assert page.evaluate.await_args_list[-1].args[1] == HIDDEN_ATTR

    @pytest.mark.asyncio
    async def test_zero_size_region_skipped(self, tmp_path):
        page = _make_page(box={"x": 0, "y": 0, "width": 1280, "height": 0})
        region = RegionDescriptor("000", region_selector("000"))
        image = await capture_region(page, region, tmp_path / "000.png", Side.PROD)
        assert image.absent
        assert image.height == 0
        page.locator.return_value.first.screenshot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_capture_writes_cropped_png(self, tmp_path):
        page = _make_page(box={"x": 0, "y": 0, "width": 10, "height": 120},
                          screenshot=_png_bytes(10, 120))
        region = RegionDescriptor("001", region_selector("001"))
        image = await capture_region(page, region, tmp_path / "prod" / "001.png", Side.PROD,
                                     max_height=100, settle_ms=0)
        assert image.path == str(tmp_path / "prod" / "001.png")
        assert image.height == 100
        with Image.open(image.path) as img:
            assert img.height == 100
        # hide + restore around the screenshot
        assert page.evaluate.await_count == 2


class TestMediaCollector:
    """Tests for MediaCollector."""

    def test_records_failed_and_error_media(self):
        collector = MediaCollector()
        collector._on_request_failed(MagicMock(resource_type="image", url="https://cdn.example.com/a/hero.jpg?v=2"))
        collector._on_request_failed(MagicMock(resource_type="script", url="https://cdn.example.com/app.js"))
        response = MagicMock(status=404, url="https://cdn.example.com/intro%20video.mp4")
        response.request.resource_type = "media"
        collector._on_response(response)
        ok = MagicMock(status=200, url="https://cdn.example.com/logo.png")
        ok.request.resource_type = "image"
        collector._on_response(ok)
        assert collector.file_names() == ["hero.jpg", "intro video.mp4"]

    def test_media_file_name(self):
        assert media_file_name("https://cdn.example.com/img/logo.svg") == "logo.svg"


class TestManifest:
    """Tests for capture manifests."""

    def test_round_trip(self, tmp_path, make_png):
        png = make_png("header.png")
        capture = SideCapture(
            url="https://www.example.com/a",
            final_url="https://www.example.com/a",
            regions=[RegionImage(region="header", side=Side.PROD, path=str(png), height=10),
                     RegionImage(region="000", side=Side.PROD, path=None, height=0)],
        )
        save_manifest(tmp_path / "side", capture)
        assert load_manifest(tmp_path / "side") == capture

    def test_missing_image_invalidates_manifest(self, tmp_path):
        capture = SideCapture(
            url="u", final_url="u",
            regions=[RegionImage(region="header", side=Side.PROD, path=str(tmp_path / "gone.png"), height=10)],
        )
        save_manifest(tmp_path / "side", capture)
        assert load_manifest(tmp_path / "side") is None

    def test_unreadable_manifest(self, tmp_path):
        (tmp_path / MANIFEST_NAME).write_text("{broken")
        assert load_manifest(tmp_path) is None
        assert load_manifest(tmp_path / "absent") is None


class TestPageRenderer:
    """Tests for PageRenderer.capture_side()."""

    @pytest.mark.asyncio
    async def test_capture_side(self, config, tmp_path):
        page = _make_page(box={"x": 0, "y": 0, "width": 10, "height": 10},
                          screenshot=_png_bytes(10, 10), names=["header"])
        # segment, hide, restore
        page.evaluate.side_effect = [
            {"names": ["header"], "hasHeader": True, "hasFooter": False, "walked": False}, 0, None,
        ]
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)
        config.bypass_headers = {"x-bypass": "secret"}

        renderer = PageRenderer(context, config, RetryPolicy(max_attempts=1))
        capture = await renderer.capture_side(config.migrated_base_url + "/a", Side.MIGRATED,
                                              tmp_path / "migrated" / "a")

        assert [r.region for r in capture.regions] == ["header"]
        assert capture.final_url == page.url
        page.set_extra_http_headers.assert_awaited_once_with({"x-bypass": "secret"})
        page.close.assert_awaited_once()
        manifest = json.loads((tmp_path / "migrated" / "a" / MANIFEST_NAME).read_text())
        assert manifest["regions"][0]["region"] == "header"

    @pytest.mark.asyncio
    async def test_prod_side_gets_no_bypass_headers(self, config, tmp_path):
        page = _make_page(names=[])
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)
        config.bypass_headers = {"x-bypass": "secret"}

        renderer = PageRenderer(context, config, RetryPolicy(max_attempts=1))
        capture = await renderer.capture_side(config.prod_base_url + "/a", Side.PROD, tmp_path / "prod")
        assert capture.regions == []
        page.set_extra_http_headers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_navigation_failure_is_capture_error(self, config, tmp_path):
        page = _make_page()
        page.goto.side_effect = PlaywrightTimeoutError("Timeout 90000ms exceeded")
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)

        renderer = PageRenderer(context, config, RetryPolicy(max_attempts=1))
        with pytest.raises(CaptureError, match="Timeout"):
            await renderer.capture_side(config.prod_base_url + "/a", Side.PROD, tmp_path / "prod")
        page.close.assert_awaited_once()
        assert not (tmp_path / "prod" / MANIFEST_NAME).exists()

    @pytest.mark.asyncio
    async def test_navigation_uses_attempt_timeout(self, config, tmp_path):
        page = _make_page()
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)

        renderer = PageRenderer(context, config, RetryPolicy(max_attempts=1))
        await renderer.capture_side(config.prod_base_url + "/a", Side.PROD, tmp_path / "prod")
        page.goto.assert_awaited_once_with(config.prod_base_url + "/a", wait_until="networkidle",
                                           timeout=config.navigation_attempt_timeout_ms())

    @pytest.mark.asyncio
    async def test_redirect_away_skips_segmentation(self, config, tmp_path):
        page = _make_page(names=["header"])
        page.url = "https://new.example.com/login"
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)

        renderer = PageRenderer(context, config, RetryPolicy(max_attempts=1))
        capture = await renderer.capture_side(config.migrated_base_url + "/a", Side.MIGRATED,
                                              tmp_path / "migrated", expected_path="/a")

        assert capture.regions == []
        assert capture.final_url == "https://new.example.com/login"
        page.evaluate.assert_not_awaited()
        page.add_style_tag.assert_not_awaited()
        # The manifest is kept so a resumed run sees the same redirect
        assert load_manifest(tmp_path / "migrated").final_url == "https://new.example.com/login"

    @pytest.mark.asyncio
    async def test_matching_path_is_segmented(self, config, tmp_path):
        page = _make_page(names=[])
        page.url = "https://new.example.com/a"
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)

        renderer = PageRenderer(context, config, RetryPolicy(max_attempts=1))
        await renderer.capture_side(config.migrated_base_url + "/a", Side.MIGRATED,
                                    tmp_path / "migrated", expected_path="/a")
        page.evaluate.assert_awaited()
