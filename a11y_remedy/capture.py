"""Isolated and in-context rasterization of document nodes."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from PIL import Image

from .categories import CategorySpec, destination_hint, spec_for
from .classifier import input_type, link_text
from .config import RemediationConfig
from .dom import NODE_ATTR, DocumentHost, MediaState, Node, Rect, RegionItem
from .errors import CaptureDegraded
from .images import (
    CONTEXT_QUALITY,
    ISOLATED_QUALITY,
    MAX_CANVAS,
    annotate,
    decode_data_url,
    decode_image,
    draw_field_rendition,
    draw_image_placeholder,
    draw_link_rendition,
    draw_svg_placeholder,
    draw_text_canvas,
    encode_jpeg,
    fetch_bytes,
    fetch_image,
    is_svg_source,
    outline,
    parse_color,
)
from .models import CaptureBundle, Category, ContextSummary
from .utils import squash

logger = logging.getLogger("a11y_remedy")

ISOLATED_PADDING = 10
DEFAULT_SVG_SIZE = 200
HEADING_NAMES = {"h1", "h2", "h3", "h4", "h5", "h6"}
FIELD_NAMES = {"input", "textarea", "select"}


def annotation_label(item: RegionItem) -> str:
    """Short caption drawn next to a neighbouring element in the context image."""
    tag = item.tag.lower()
    text = squash(item.text)
    if tag == "label":
        return f"LABEL: {text[:25]}"
    if tag == "legend":
        return f"SECTION: {text[:25]}"
    if tag in HEADING_NAMES:
        return f"{tag.upper()}: {text[:25]}"
    if tag == "button":
        return f"BTN: {text[:20]}"
    if tag == "a":
        return f"LINK: {text[:20]}"
    if tag in FIELD_NAMES:
        kind = (item.input_type or tag).upper()
        return f"{kind}: {item.placeholder or item.value or 'field'}"[:25]
    return text[:30]


def padded_clip(rect: Rect, min_size: Tuple[int, int], bounds: Optional[Rect]) -> Rect:
    min_width, min_height = min_size
    clip = Rect(
        rect.x - ISOLATED_PADDING,
        rect.y - ISOLATED_PADDING,
        max(min_width, rect.width + ISOLATED_PADDING * 2),
        max(min_height, rect.height + ISOLATED_PADDING * 2),
    )
    return clip.move_inside(bounds)


def context_region(rect: Rect, margin: float, bounds: Optional[Rect]) -> Rect:
    """Margin-expanded area around a node, kept on the page and within the canvas limit."""
    max_width, max_height = MAX_CANVAS
    region = rect.expand(margin).clamp(bounds)
    return region.crop_around(rect, max_width, max_height)


class CaptureRenderer:
    """Produces a ``CaptureBundle`` for a node; every path ends in pixels, never an error."""

    def __init__(
        self,
        host: DocumentHost,
        config: RemediationConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.host = host
        self.config = config
        self.session = session or requests.Session()

    async def capture(
        self,
        node: Node,
        category: Category,
        context: Optional[ContextSummary] = None,
    ) -> CaptureBundle:
        spec = spec_for(category)
        try:
            return await asyncio.wait_for(
                self._capture(node, spec, context), timeout=self.config.capture_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Capture of %s %s timed out after %.1fs; using placeholders",
                category.value,
                node.handle,
                self.config.capture_timeout,
            )
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected capture failure for %s %s", category.value, node.handle)
        return self.placeholder_bundle(node, spec, context)

    def placeholder_bundle(
        self,
        node: Node,
        spec: CategorySpec,
        context: Optional[ContextSummary] = None,
    ) -> CaptureBundle:
        isolated = self._isolated_fallback(node, spec, None)
        context_image = self._context_fallback(spec, context)
        return CaptureBundle(
            isolated=encode_jpeg(isolated, ISOLATED_QUALITY),
            context=encode_jpeg(context_image, CONTEXT_QUALITY),
            degraded=("isolated", "context"),
        )

    async def _capture(
        self,
        node: Node,
        spec: CategorySpec,
        context: Optional[ContextSummary],
    ) -> CaptureBundle:
        rect = await self.host.bounding_box(node.handle)
        bounds = await self.host.page_bounds()
        degraded: List[str] = []

        natural_size: Optional[Tuple[int, int]] = None
        try:
            isolated, natural_size = await self._isolated(node, spec, rect, bounds)
        except CaptureDegraded as exc:
            logger.debug("Isolated capture of %s degraded: %s", node.handle, exc)
            degraded.append("isolated")
            isolated = self._isolated_fallback(node, spec, rect)

        try:
            context_image = await self._context(node, spec, rect, bounds)
        except CaptureDegraded as exc:
            logger.debug("Context capture of %s degraded: %s", node.handle, exc)
            degraded.append("context")
            context_image = self._context_fallback(spec, context)

        return CaptureBundle(
            isolated=encode_jpeg(isolated, ISOLATED_QUALITY),
            context=encode_jpeg(context_image, CONTEXT_QUALITY),
            degraded=tuple(degraded),
            natural_size=natural_size,
        )

    async def _screenshot(self, clip: Rect) -> Optional[Image.Image]:
        if clip.is_empty:
            return None
        png = await self.host.screenshot(clip)
        if not png:
            return None
        return decode_image(png)

    async def _isolated(
        self,
        node: Node,
        spec: CategorySpec,
        rect: Optional[Rect],
        bounds: Optional[Rect],
    ) -> Tuple[Image.Image, Optional[Tuple[int, int]]]:
        if spec.category is Category.IMAGE:
            if node.tag_name == "svg" or is_svg_source(node.element.get("src"), node.element.get("type")):
                return await self._svg(node, rect), None
            return await self._raster(node, rect)

        if rect is None or spec.isolated_min_size is None:
            raise CaptureDegraded("element has no layout box")
        image = await self._screenshot(padded_clip(rect, spec.isolated_min_size, bounds))
        if image is None:
            raise CaptureDegraded("host could not render the element")
        return image, None

    async def _wait_for_media(self, node: Node) -> MediaState:
        # The host bounds its own wait; this guards against hosts that do not.
        timeout = self.config.capture_timeout / 2
        try:
            return await asyncio.wait_for(
                self.host.wait_for_media(node.handle, timeout), timeout=timeout
            )
        except asyncio.TimeoutError:
            return MediaState(loaded=False, current_src=node.element.get("src"))

    async def _raster(
        self, node: Node, rect: Optional[Rect]
    ) -> Tuple[Image.Image, Optional[Tuple[int, int]]]:
        state = await self._wait_for_media(node)
        natural_size: Optional[Tuple[int, int]] = None
        if state.loaded and state.natural_width and state.natural_height:
            natural_size = (state.natural_width, state.natural_height)

        image: Optional[Image.Image] = None
        if state.loaded and rect is not None:
            image = await self._screenshot(rect)

        if image is None:
            src = state.current_src or node.element.get("src")
            image = await self._load_source(src)
            if image is not None and natural_size is None:
                natural_size = image.size

        if image is None:
            raise CaptureDegraded("image source could not be decoded")
        return image, natural_size

    def _resolve(self, src: str) -> str:
        return urljoin(self.host.base_url, src) if self.host.base_url else src

    async def _load_source(self, src: Optional[str]) -> Optional[Image.Image]:
        if not src:
            return None
        if src.startswith("data:"):
            decoded = decode_data_url(src)
            return decode_image(decoded[1]) if decoded else None
        url = self._resolve(src)
        if not url.startswith(("http://", "https://")):
            return None
        timeout = self.config.capture_timeout / 2
        return await asyncio.to_thread(fetch_image, self.session, url, timeout)

    async def _svg(self, node: Node, rect: Optional[Rect]) -> Image.Image:
        try:
            return await asyncio.wait_for(
                self._render_svg(node, rect), timeout=self.config.svg_timeout
            )
        except asyncio.TimeoutError as exc:
            raise CaptureDegraded("svg rendering timed out") from exc

    async def _svg_markup(self, node: Node) -> str:
        element = node.element
        if node.tag_name == "svg":
            return str(element)
        src = element.get("src") or ""
        if src.startswith("data:"):
            decoded = decode_data_url(src)
            if decoded is None:
                raise CaptureDegraded("undecodable svg data URL")
            return decoded[1].decode("utf-8", errors="replace")
        url = self._resolve(src)
        if not url.startswith(("http://", "https://")):
            raise CaptureDegraded(f"svg source {src!r} is not fetchable")
        fetched = await asyncio.to_thread(
            fetch_bytes, self.session, url, self.config.svg_timeout
        )
        if fetched is None:
            raise CaptureDegraded(f"svg source {url} could not be fetched")
        return fetched[1].decode("utf-8", errors="replace")

    async def _render_svg(self, node: Node, rect: Optional[Rect]) -> Image.Image:
        markup = await self._svg_markup(node)
        svg = BeautifulSoup(markup, "html.parser").find("svg")
        if svg is None:
            raise CaptureDegraded("no <svg> root in markup")
        for tag in [svg, *svg.find_all(True)]:
            tag.attrs.pop(NODE_ATTR, None)
        width = int(rect.width) if rect is not None and rect.width else DEFAULT_SVG_SIZE
        height = int(rect.height) if rect is not None and rect.height else DEFAULT_SVG_SIZE
        if not svg.get("width") or not svg.get("height"):
            svg["width"] = str(width)
            svg["height"] = str(height)
        if not svg.get("xmlns"):
            svg["xmlns"] = "http://www.w3.org/2000/svg"
        png = await self.host.rasterize_svg(str(svg), width, height)
        if not png:
            raise CaptureDegraded("host cannot rasterize svg")
        image = decode_image(png)
        if image is None:
            raise CaptureDegraded("rasterized svg could not be decoded")
        return image

    def _isolated_fallback(
        self, node: Node, spec: CategorySpec, rect: Optional[Rect]
    ) -> Image.Image:
        element = node.element
        if spec.category is Category.IMAGE:
            if node.tag_name == "svg" or is_svg_source(element.get("src"), element.get("type")):
                return draw_svg_placeholder()
            return draw_image_placeholder(element.get("src"), element.get("alt"))

        min_width, min_height = spec.isolated_min_size or (200, 40)
        width = max(min_width, int(rect.width) + ISOLATED_PADDING * 2) if rect else min_width
        height = max(min_height, int(rect.height) + ISOLATED_PADDING * 2) if rect else min_height
        if spec.category is Category.FORM_FIELD:
            return draw_field_rendition(
                (width, height),
                input_type(element),
                placeholder=squash(element.get("placeholder")),
                value=squash(element.get("value")),
                required=element.has_attr("required"),
                padding=ISOLATED_PADDING,
            )
        return draw_link_rendition(
            (width, height),
            link_text(element),
            destination_hint(node, self.host.base_url),
            padding=ISOLATED_PADDING,
        )

    async def _context(
        self,
        node: Node,
        spec: CategorySpec,
        rect: Optional[Rect],
        bounds: Optional[Rect],
    ) -> Image.Image:
        if rect is None or rect.is_empty:
            raise CaptureDegraded("element has no layout box")
        region = context_region(rect, spec.context_margin(rect), bounds)
        if region.is_empty:
            raise CaptureDegraded("context region is empty")

        image = await self._screenshot(region)
        screenshot_ok = image is not None
        if image is None:
            background = parse_color(await self.host.background_color())
            image = Image.new(
                "RGB", (max(1, int(region.width)), max(1, int(region.height))), background
            )

        items = await self.host.region_items(region, spec.annotation_selector)
        annotations = []
        for item in items:
            if item.handle == node.handle:
                continue
            relative = item.rect.relative_to(region)
            annotations.append((relative.x, relative.y, annotation_label(item)))
        annotate(image, annotations, boxed=screenshot_ok)

        target = rect.relative_to(region)
        if not screenshot_ok:
            annotate(image, [(target.x + 2, target.y + 2, spec.category.value.upper())], fill="#374151")
        outline(image, (target.x, target.y, target.width, target.height), spec.highlight, width=3)
        return image

    def _context_fallback(
        self, spec: CategorySpec, context: Optional[ContextSummary]
    ) -> Image.Image:
        lines = [f"{spec.category.value.replace('_', ' ').title()} context"]
        if context is not None and context.text:
            lines.append(context.text)
        return draw_text_canvas(lines, spec.highlight)
