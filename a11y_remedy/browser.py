"""Live document host backed by a Playwright-rendered Chromium page."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from bs4 import BeautifulSoup
from playwright.async_api import Browser, Error as PlaywrightError, Page, async_playwright

from .config import RemediationConfig
from .dom import NODE_ATTR, DocumentHost, MediaState, Rect, RegionItem
from .errors import ApplyError

logger = logging.getLogger("a11y_remedy")

STATUS_COLORS = {
    "generating": "#f97316",
    "generated": "#16a34a",
    "failed": "#dc2626",
    "analyzing": "#2563eb",
    "passed": "#166534",
    "needs-work": "#f97316",
    "skipped": "#6b7280",
}

# Handles live in page script state; the document itself is never stamped.
_REGISTRY = """
const reg = window.__a11yRemedy || (window.__a11yRemedy = {
  ids: new WeakMap(), nodes: new Map(), marks: new Map(), next: 1
});
const lookup = (id) => {
  const el = reg.nodes.get(id);
  return el && el.isConnected ? el : null;
};
"""

_SNAPSHOT_JS = (
    "([selector, attr]) => {"
    + _REGISTRY
    + """
  for (const el of document.querySelectorAll(selector)) {
    if (!reg.ids.has(el)) {
      const id = String(reg.next++);
      reg.ids.set(el, id);
      reg.nodes.set(id, el);
    }
  }
  const root = document.documentElement;
  const clone = root.cloneNode(true);
  const live = [root, ...root.querySelectorAll('*')];
  const copies = [clone, ...clone.querySelectorAll('*')];
  for (let i = 0; i < live.length && i < copies.length; i++) {
    const id = reg.ids.get(live[i]);
    if (id) copies[i].setAttribute(attr, id);
    if ((live[i].tagName === 'INPUT' || live[i].tagName === 'TEXTAREA') && live[i].value) {
      copies[i].setAttribute('value', live[i].value);
    }
  }
  return clone.outerHTML;
}"""
)

_SET_ATTRIBUTE_JS = (
    "([id, name, value]) => {"
    + _REGISTRY
    + "const el = lookup(id); if (!el) return false; el.setAttribute(name, value); return true; }"
)

_REMOVE_ATTRIBUTE_JS = (
    "([id, name]) => {"
    + _REGISTRY
    + "const el = lookup(id); if (!el) return false; el.removeAttribute(name); return true; }"
)

_SET_TEXT_JS = (
    "([id, text]) => {"
    + _REGISTRY
    + "const el = lookup(id); if (!el) return false; el.textContent = text; return true; }"
)

_INNER_HTML_JS = (
    "(id) => {"
    + _REGISTRY
    + "const el = lookup(id); return el ? el.innerHTML : null; }"
)

_SET_INNER_HTML_JS = (
    "([id, markup]) => {"
    + _REGISTRY
    + "const el = lookup(id); if (!el) return false; el.innerHTML = markup; return true; }"
)

_INSERT_BEFORE_JS = (
    "([id, tag, attrs, text]) => {"
    + _REGISTRY
    + """
  const el = lookup(id);
  if (!el || !el.parentNode) return false;
  const created = document.createElement(tag);
  for (const [name, value] of Object.entries(attrs)) created.setAttribute(name, value);
  created.textContent = text;
  el.parentNode.insertBefore(created, el);
  return true;
}"""
)

_REMOVE_ELEMENT_JS = (
    "(id) => {"
    + _REGISTRY
    + "const el = lookup(id); if (!el) return false; el.remove(); reg.nodes.delete(id); return true; }"
)

_BOUNDING_BOX_JS = (
    "(id) => {"
    + _REGISTRY
    + """
  const el = lookup(id);
  if (!el) return null;
  const r = el.getBoundingClientRect();
  if (!r.width && !r.height) return null;
  return {x: r.left + window.scrollX, y: r.top + window.scrollY, width: r.width, height: r.height};
}"""
)

_PAGE_BOUNDS_JS = """() => {
  const d = document.documentElement;
  return {x: 0, y: 0,
          width: Math.max(d.scrollWidth, d.clientWidth),
          height: Math.max(d.scrollHeight, d.clientHeight)};
}"""

_BACKGROUND_JS = (
    "() => getComputedStyle(document.body || document.documentElement).backgroundColor"
)

_WAIT_FOR_MEDIA_JS = (
    "async ([id, timeoutMs]) => {"
    + _REGISTRY
    + """
  const el = lookup(id);
  if (!el) return {loaded: false, natural_width: 0, natural_height: 0, current_src: null};
  if (el.tagName !== 'IMG') {
    const r = el.getBoundingClientRect();
    return {loaded: true, natural_width: Math.round(r.width), natural_height: Math.round(r.height),
            current_src: null};
  }
  if (!el.complete) {
    el.scrollIntoView({block: 'center'});
    await new Promise((resolve) => {
      const timer = setTimeout(resolve, timeoutMs);
      const finish = () => { clearTimeout(timer); resolve(); };
      el.addEventListener('load', finish, {once: true});
      el.addEventListener('error', finish, {once: true});
    });
  }
  const ready = el.complete && el.naturalWidth > 0;
  if (ready && el.decode) {
    try { await el.decode(); } catch (e) { /* decoded enough to paint */ }
  }
  return {loaded: ready, natural_width: el.naturalWidth, natural_height: el.naturalHeight,
          current_src: el.currentSrc || el.src || null};
}"""
)

_REGION_ITEMS_JS = (
    "([selector, clip, limit]) => {"
    + _REGISTRY
    + """
  const items = [];
  for (const el of document.querySelectorAll(selector)) {
    const r = el.getBoundingClientRect();
    if (!r.width || !r.height) continue;
    const x = r.left + window.scrollX;
    const y = r.top + window.scrollY;
    if (x + r.width < clip.x || x > clip.x + clip.width ||
        y + r.height < clip.y || y > clip.y + clip.height) continue;
    const isField = ['INPUT', 'TEXTAREA', 'SELECT'].includes(el.tagName);
    const text = (el.textContent || '').trim().replace(/\\s+/g, ' ').slice(0, 60);
    if (!text && !isField) continue;
    items.push({
      tag: el.tagName.toLowerCase(),
      text: text,
      rect: {x: x, y: y, width: r.width, height: r.height},
      handle: reg.ids.get(el) || null,
      input_type: isField ? (el.type || el.tagName.toLowerCase()) : null,
      placeholder: isField ? (el.placeholder || null) : null,
      value: isField ? (el.value || null) : null,
    });
    if (items.length >= limit) break;
  }
  return items;
}"""
)

_MARK_JS = (
    "([id, color]) => {"
    + _REGISTRY
    + """
  const el = lookup(id);
  if (!el) return false;
  if (!reg.marks.has(id)) reg.marks.set(id, el.getAttribute('style'));
  el.style.outline = `3px solid ${color}`;
  el.style.outlineOffset = '2px';
  return true;
}"""
)

_CLEAR_MARKS_JS = (
    "() => {"
    + _REGISTRY
    + """
  for (const [id, style] of reg.marks) {
    const el = reg.nodes.get(id);
    if (!el) continue;
    if (style === null) el.removeAttribute('style');
    else el.setAttribute('style', style);
  }
  reg.marks.clear();
}"""
)

_FLUSH_JS = "() => new Promise((resolve) => requestAnimationFrame(() => resolve(true)))"

MAX_REGION_ITEMS = 40


class PlaywrightDocument(DocumentHost):
    """``DocumentHost`` over a live page; geometry is in document coordinates."""

    def __init__(self, page: Page, browser: Optional[Browser] = None) -> None:
        self.page = page
        self.browser = browser

    @property
    def base_url(self) -> str:  # type: ignore[override]
        return self.page.url

    async def _mutate(self, script: str, args, what: str) -> None:
        if not await self.page.evaluate(script, args):
            raise ApplyError(f"{what}: element {args[0] if isinstance(args, list) else args} is detached")

    async def snapshot(self, selector: str) -> BeautifulSoup:
        html = await self.page.evaluate(_SNAPSHOT_JS, [selector, NODE_ATTR])
        return BeautifulSoup(html, "html.parser")

    async def set_attribute(self, handle: str, name: str, value: str) -> None:
        await self._mutate(_SET_ATTRIBUTE_JS, [handle, name, value], f"set {name}")

    async def remove_attribute(self, handle: str, name: str) -> None:
        await self._mutate(_REMOVE_ATTRIBUTE_JS, [handle, name], f"remove {name}")

    async def set_text(self, handle: str, text: str) -> None:
        await self._mutate(_SET_TEXT_JS, [handle, text], "set text")

    async def inner_html(self, handle: str) -> str:
        markup = await self.page.evaluate(_INNER_HTML_JS, handle)
        if markup is None:
            raise ApplyError(f"read markup: element {handle} is detached")
        return markup

    async def set_inner_html(self, handle: str, markup: str) -> None:
        await self._mutate(_SET_INNER_HTML_JS, [handle, markup], "set markup")

    async def insert_before(
        self, handle: str, tag: str, attrs: Dict[str, str], text: str
    ) -> None:
        await self._mutate(_INSERT_BEFORE_JS, [handle, tag, attrs, text], f"insert <{tag}>")

    async def remove_element(self, handle: str) -> None:
        await self._mutate(_REMOVE_ELEMENT_JS, handle, "remove element")

    async def bounding_box(self, handle: str) -> Optional[Rect]:
        box = await self.page.evaluate(_BOUNDING_BOX_JS, handle)
        return Rect(**box) if box else None

    async def page_bounds(self) -> Optional[Rect]:
        return Rect(**await self.page.evaluate(_PAGE_BOUNDS_JS))

    async def background_color(self) -> str:
        return await self.page.evaluate(_BACKGROUND_JS)

    async def wait_for_media(self, handle: str, timeout: float) -> MediaState:
        state = await self.page.evaluate(_WAIT_FOR_MEDIA_JS, [handle, int(timeout * 1000)])
        return MediaState(**state)

    async def screenshot(self, clip: Rect) -> Optional[bytes]:
        try:
            return await self.page.screenshot(
                clip={"x": clip.x, "y": clip.y, "width": clip.width, "height": clip.height},
                full_page=True,
                type="png",
            )
        except PlaywrightError as exc:
            logger.debug("Screenshot of %s failed: %s", clip, exc)
            return None

    async def region_items(self, clip: Rect, selector: str) -> List[RegionItem]:
        raw = await self.page.evaluate(
            _REGION_ITEMS_JS,
            [selector, {"x": clip.x, "y": clip.y, "width": clip.width, "height": clip.height}, MAX_REGION_ITEMS],
        )
        items: List[RegionItem] = []
        for item in raw:
            rect = Rect(**item.pop("rect"))
            items.append(RegionItem(rect=rect, **item))
        return items

    async def rasterize_svg(self, markup: str, width: int, height: int) -> Optional[bytes]:
        if self.browser is None:
            return None
        context = await self.browser.new_context(
            java_script_enabled=False,
            viewport={"width": max(1, width), "height": max(1, height)},
        )
        try:
            page = await context.new_page()
            await page.set_content(
                f'<html><body style="margin:0;background:#ffffff">{markup}</body></html>'
            )
            svg = await page.query_selector("svg")
            if svg is None:
                return None
            return await svg.screenshot(type="png")
        except PlaywrightError as exc:
            logger.debug("SVG rasterization failed: %s", exc)
            return None
        finally:
            await context.close()

    async def mark(self, handle: str, status: str) -> None:
        await self.page.evaluate(_MARK_JS, [handle, STATUS_COLORS.get(status, "#6b7280")])

    async def clear_marks(self) -> None:
        await self.page.evaluate(_CLEAR_MARKS_JS)

    async def flush(self) -> None:
        await self.page.evaluate(_FLUSH_JS)

    async def content(self) -> str:
        return await self.page.content()


@asynccontextmanager
async def open_document(url: str, config: RemediationConfig) -> AsyncIterator[PlaywrightDocument]:
    """Navigate to a URL using Playwright and keep the page open as a document host."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=True)
        page = await browser.new_page()
        page.set_default_navigation_timeout(config.navigation_timeout * 1000)
        try:
            logger.info("Loading %s", url)
            await page.goto(url, wait_until="networkidle")
            if config.wait_after_load:
                await page.wait_for_timeout(int(config.wait_after_load * 1000))
            yield PlaywrightDocument(page, browser)
        finally:
            await browser.close()
