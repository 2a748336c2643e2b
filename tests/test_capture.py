"""Tests for the capture renderer and its placeholder fallbacks."""

import asyncio
import io
from typing import List, Optional
from unittest.mock import MagicMock

import pytest
import requests
from PIL import Image

from a11y_remedy.capture import CaptureRenderer, annotation_label, context_region, padded_clip
from a11y_remedy.classifier import FORM_FIELD_SELECTOR, IMAGE_SELECTOR, LINK_SELECTOR
from a11y_remedy.dom import Rect, RegionItem, SoupDocument, collect_nodes
from a11y_remedy.images import raster_type
from a11y_remedy.models import Category, Phase
from a11y_remedy.pipeline import RemediationPipeline

from conftest import ScriptedClient, png_bytes, png_data_url

JPEG_MAGIC = b"\xff\xd8"


class RenderingDocument(SoupDocument):
    """Soup host that pretends every node has a layout box and can be screenshotted."""

    def __init__(self, html: str, rect: Rect, items: Optional[List[RegionItem]] = None) -> None:
        super().__init__(html)
        self.rect = rect
        self.items = items or []
        self.clips: List[Rect] = []

    async def bounding_box(self, handle):
        return self.rect

    async def page_bounds(self):
        return Rect(0, 0, 1280, 3000)

    async def screenshot(self, clip):
        self.clips.append(clip)
        return png_bytes((int(clip.width), int(clip.height)), "#ddeeff")

    async def region_items(self, clip, selector):
        return list(self.items)


class SlowDocument(SoupDocument):
    async def bounding_box(self, handle):
        await asyncio.sleep(5)
        return None


async def _node(host, selector):
    snapshot = await host.snapshot(selector)
    return collect_nodes(snapshot, selector)[0]


def _size(jpeg: bytes):
    return Image.open(io.BytesIO(jpeg)).size


@pytest.mark.asyncio
async def test_static_document_falls_back_to_placeholders(config):
    host = SoupDocument('<p>Hello <img src="missing.png"></p>')
    node = await _node(host, IMAGE_SELECTOR)

    bundle = await CaptureRenderer(host, config).capture(node, Category.IMAGE)

    assert bundle.isolated.startswith(JPEG_MAGIC)
    assert bundle.context.startswith(JPEG_MAGIC)
    assert bundle.degraded == ("isolated", "context")
    assert bundle.natural_size is None


@pytest.mark.asyncio
async def test_data_url_image_is_decoded(config):
    host = SoupDocument(f'<img src="{png_data_url((120, 80))}">')
    node = await _node(host, IMAGE_SELECTOR)

    bundle = await CaptureRenderer(host, config).capture(node, Category.IMAGE)

    assert bundle.natural_size == (120, 80)
    assert _size(bundle.isolated) == (120, 80)
    assert bundle.degraded == ("context",)


@pytest.mark.asyncio
async def test_remote_image_is_fetched_relative_to_base_url(config):
    host = SoupDocument('<img src="/img/bike.png">', base_url="https://shop.example/catalog/")
    node = await _node(host, IMAGE_SELECTOR)
    session = MagicMock()
    session.get.return_value = MagicMock(
        content=png_bytes((64, 64)), headers={"Content-Type": "image/png"}
    )
    renderer = CaptureRenderer(host, config, session=session)

    bundle = await renderer.capture(node, Category.IMAGE)

    assert session.get.call_args[0][0] == "https://shop.example/img/bike.png"
    assert bundle.natural_size == (64, 64)


def _not_found_session():
    session = MagicMock()
    response = MagicMock(content=b"Not Found", headers={"Content-Type": "text/html"})
    response.raise_for_status.side_effect = requests.HTTPError("404 Client Error: Not Found")
    session.get.return_value = response
    return session


@pytest.mark.asyncio
async def test_missing_remote_image_yields_placeholder(config):
    host = SoupDocument('<img src="/img/gone.png">', base_url="https://shop.example/")
    node = await _node(host, IMAGE_SELECTOR)
    renderer = CaptureRenderer(host, config, session=_not_found_session())

    bundle = await renderer.capture(node, Category.IMAGE)

    assert bundle.degraded == ("isolated", "context")
    assert bundle.natural_size is None
    assert _size(bundle.isolated) == (400, 300)


@pytest.mark.asyncio
async def test_missing_remote_image_is_still_described(config):
    host = SoupDocument('<p>New arrivals <img src="/img/gone.png"></p>', base_url="https://shop.example/")
    client = ScriptedClient()
    renderer = CaptureRenderer(host, config, session=_not_found_session())
    pipeline = RemediationPipeline(host, config, client=client, renderer=renderer)

    report = await pipeline.run(Category.IMAGE)

    assert len(report.generation.succeeded) == 1
    assert report.generation.failed == []
    assert client.count(Category.IMAGE, Phase.GENERATE) == 1
    assert host.soup.img["alt"] == "A red commuter bicycle"


@pytest.mark.asyncio
async def test_link_capture_uses_screenshots(config):
    items = [
        RegionItem(tag="h2", text="Plans", rect=Rect(120, 60, 80, 20)),
        RegionItem(tag="a", text="Learn more", rect=Rect(100, 100, 80, 20), handle="1"),
    ]
    host = RenderingDocument('<a href="/pricing">Learn more</a>', Rect(100, 100, 80, 20), items)
    node = await _node(host, LINK_SELECTOR)

    bundle = await CaptureRenderer(host, config).capture(node, Category.LINK)

    assert bundle.degraded == ()
    # Isolated clip is padded to the minimum link size.
    assert host.clips[0] == Rect(90, 90, 200, 40)
    # Context is the 150px margin region clamped to the page.
    assert _size(bundle.context) == (330, 270)


@pytest.mark.asyncio
async def test_form_field_without_layout_is_drawn(config):
    host = SoupDocument('<input type="email" placeholder="you@example.com" required>')
    node = await _node(host, FORM_FIELD_SELECTOR)

    bundle = await CaptureRenderer(host, config).capture(node, Category.FORM_FIELD)

    assert _size(bundle.isolated) == (200, 50)
    assert bundle.degraded == ("isolated", "context")


@pytest.mark.asyncio
async def test_capture_timeout_yields_placeholders(config):
    config.capture_timeout = 0.05
    host = SlowDocument('<a href="/x">here</a>')
    node = await _node(host, LINK_SELECTOR)

    bundle = await CaptureRenderer(host, config).capture(node, Category.LINK)

    assert bundle.degraded == ("isolated", "context")
    assert bundle.isolated.startswith(JPEG_MAGIC)


@pytest.mark.asyncio
async def test_inline_svg_without_rasterizer_uses_placeholder(config):
    host = SoupDocument('<svg role="img" viewBox="0 0 10 10"><circle r="4"/></svg>')
    node = await _node(host, IMAGE_SELECTOR)

    bundle = await CaptureRenderer(host, config).capture(node, Category.IMAGE)

    assert "isolated" in bundle.degraded
    assert _size(bundle.isolated) == (400, 300)


def test_context_region_is_limited_to_canvas():
    region = context_region(Rect(500, 500, 1000, 1000), 1500, Rect(0, 0, 2000, 5000))
    assert (region.width, region.height) == (800, 600)
    assert region.x <= 1000 <= region.right
    assert region.y <= 1000 <= region.bottom


def test_padded_clip_keeps_minimum_size_at_page_edges():
    page = Rect(0, 0, 1280, 800)
    assert padded_clip(Rect(2, 2, 20, 10), (200, 50), page) == Rect(0, 0, 200, 50)
    assert padded_clip(Rect(1270, 790, 20, 10), (200, 50), page) == Rect(1080, 750, 200, 50)


@pytest.mark.parametrize(
    "item, expected",
    [
        (RegionItem(tag="label", text="Email address", rect=Rect(0, 0, 1, 1)), "LABEL: Email address"),
        (RegionItem(tag="h2", text="Create Account", rect=Rect(0, 0, 1, 1)), "H2: Create Account"),
        (RegionItem(tag="button", text="Sign up", rect=Rect(0, 0, 1, 1)), "BTN: Sign up"),
        (
            RegionItem(tag="input", text="", rect=Rect(0, 0, 1, 1), input_type="email", placeholder="you@x"),
            "EMAIL: you@x",
        ),
    ],
)
def test_annotation_label(item, expected):
    assert annotation_label(item) == expected


def test_raster_type_prefers_signature_and_rejects_svg():
    assert raster_type(png_bytes((8, 8)), "application/octet-stream") == "png"
    assert raster_type(b'<svg xmlns="http://www.w3.org/2000/svg"></svg>' * 4, "image/svg+xml") is None
    assert raster_type(b"plain bytes without a signature" * 4, "image/jpg; q=1") == "jpeg"
    assert raster_type(b"plain bytes without a signature" * 4, "text/html") is None
