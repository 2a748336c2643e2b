"""Document tree abstraction shared by the live browser and static HTML hosts.

The pipeline never holds element objects across phases. Every phase starts
from ``DocumentHost.snapshot``: the host registers the elements matching a
selector under stable string handles and returns a parsed copy of the tree
in which those elements carry ``NODE_ATTR``. Reads go against the copy;
mutations go back to the host by handle.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from .errors import ApplyError
from .utils import squash

logger = logging.getLogger("a11y_remedy")

NODE_ATTR = "data-a11y-remedy-node"

# Provenance written onto remediated nodes; see applier.py.
MARKER_ATTR = "data-a11y-remedy"
ADDED_ATTR = "data-a11y-remedy-added"
ORIGINAL_ATTR_PREFIX = "data-a11y-remedy-original-"
ORIGINAL_TEXT_ATTR = "data-a11y-remedy-text"
ORIGINAL_HTML_ATTR = "data-a11y-remedy-html"
LABEL_MARKER = "label"


@dataclass(frozen=True)
class Rect:
    """Axis-aligned box in document (page) coordinates, CSS pixels."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def expand(self, margin: float) -> "Rect":
        return Rect(
            self.x - margin,
            self.y - margin,
            self.width + margin * 2,
            self.height + margin * 2,
        )

    def clamp(self, bounds: Optional["Rect"]) -> "Rect":
        """Intersect with ``bounds`` (or the positive quadrant); a disjoint box collapses to zero size."""
        left = max(self.x, bounds.x if bounds else 0.0)
        top = max(self.y, bounds.y if bounds else 0.0)
        right = min(self.right, bounds.right) if bounds else self.right
        bottom = min(self.bottom, bounds.bottom) if bounds else self.bottom
        return Rect(left, top, max(0.0, right - left), max(0.0, bottom - top))

    def move_inside(self, bounds: Optional["Rect"]) -> "Rect":
        """Shift (not shrink) onto ``bounds``; only a box larger than ``bounds`` is clamped."""
        if bounds is None:
            return Rect(max(self.x, 0.0), max(self.y, 0.0), self.width, self.height)
        x = max(bounds.x, min(self.x, bounds.right - self.width))
        y = max(bounds.y, min(self.y, bounds.bottom - self.height))
        return Rect(x, y, self.width, self.height).clamp(bounds)

    def intersects(self, other: "Rect") -> bool:
        return (
            self.x < other.right
            and other.x < self.right
            and self.y < other.bottom
            and other.y < self.bottom
        )

    def crop_around(self, focus: "Rect", max_width: float, max_height: float) -> "Rect":
        """Shrink to at most the given size, centred on ``focus`` and kept inside self."""
        width = min(self.width, max_width)
        height = min(self.height, max_height)
        cx, cy = focus.center
        x = min(max(cx - width / 2, self.x), self.right - width)
        y = min(max(cy - height / 2, self.y), self.bottom - height)
        return Rect(x, y, width, height)

    def relative_to(self, origin: "Rect") -> "Rect":
        return Rect(self.x - origin.x, self.y - origin.y, self.width, self.height)


@dataclass
class MediaState:
    """Decode status of an element's media after a bounded wait."""

    loaded: bool
    natural_width: int = 0
    natural_height: int = 0
    current_src: Optional[str] = None


@dataclass
class RegionItem:
    """A labelled element found inside a capture region."""

    tag: str
    text: str
    rect: Rect
    handle: Optional[str] = None
    input_type: Optional[str] = None
    placeholder: Optional[str] = None
    value: Optional[str] = None


@dataclass
class Node:
    """A handle to a document element plus its read-only snapshot view."""

    handle: str
    element: Tag
    document: BeautifulSoup

    @property
    def tag_name(self) -> str:
        return (self.element.name or "").lower()


def collect_nodes(snapshot: BeautifulSoup, selector: str) -> List[Node]:
    """Return the stamped elements of a snapshot that match ``selector``."""
    nodes: List[Node] = []
    for element in snapshot.select(selector):
        handle = element.get(NODE_ATTR)
        if not handle:
            continue
        nodes.append(Node(handle=str(handle), element=element, document=snapshot))
    return nodes


def element_text(element: Tag) -> str:
    """Visible text of an element with whitespace collapsed."""
    return squash(element.get_text(" "))


def find_by_id(document: BeautifulSoup, element_id: str) -> Optional[Tag]:
    if not element_id:
        return None
    return document.find(id=element_id)


class DocumentHost(abc.ABC):
    """Capabilities the pipeline needs from a mutable document tree."""

    base_url: str = ""

    @abc.abstractmethod
    async def snapshot(self, selector: str) -> BeautifulSoup:
        """Register elements matching ``selector`` and return a stamped copy of the tree."""

    @abc.abstractmethod
    async def set_attribute(self, handle: str, name: str, value: str) -> None: ...

    @abc.abstractmethod
    async def remove_attribute(self, handle: str, name: str) -> None: ...

    @abc.abstractmethod
    async def set_text(self, handle: str, text: str) -> None: ...

    @abc.abstractmethod
    async def inner_html(self, handle: str) -> str:
        """Serialized children of an element."""

    @abc.abstractmethod
    async def set_inner_html(self, handle: str, markup: str) -> None: ...

    @abc.abstractmethod
    async def insert_before(
        self, handle: str, tag: str, attrs: Dict[str, str], text: str
    ) -> None:
        """Create an element and insert it as the preceding sibling of ``handle``."""

    @abc.abstractmethod
    async def remove_element(self, handle: str) -> None: ...

    @abc.abstractmethod
    async def bounding_box(self, handle: str) -> Optional[Rect]: ...

    @abc.abstractmethod
    async def page_bounds(self) -> Optional[Rect]: ...

    @abc.abstractmethod
    async def background_color(self) -> str: ...

    @abc.abstractmethod
    async def wait_for_media(self, handle: str, timeout: float) -> MediaState: ...

    @abc.abstractmethod
    async def screenshot(self, clip: Rect) -> Optional[bytes]:
        """PNG bytes of a page region, or None when the host cannot render."""

    @abc.abstractmethod
    async def region_items(self, clip: Rect, selector: str) -> List[RegionItem]: ...

    @abc.abstractmethod
    async def rasterize_svg(self, markup: str, width: int, height: int) -> Optional[bytes]: ...

    @abc.abstractmethod
    async def mark(self, handle: str, status: str) -> None:
        """Show a visual status marker on an element."""

    @abc.abstractmethod
    async def clear_marks(self) -> None: ...

    @abc.abstractmethod
    async def flush(self) -> None:
        """Return once previous mutations are visible to the next snapshot."""

    @abc.abstractmethod
    async def content(self) -> str: ...


class SoupDocument(DocumentHost):
    """Static HTML host backed by BeautifulSoup; nothing can be rendered."""

    def __init__(self, html: str, base_url: str = "") -> None:
        self.soup = BeautifulSoup(html, "html.parser")
        self.base_url = base_url
        self.marks: Dict[str, str] = {}
        self._nodes: Dict[str, Tag] = {}
        self._handles: Dict[int, str] = {}
        self._next_handle = 1

    def _register(self, tag: Tag) -> str:
        handle = self._handles.get(id(tag))
        if handle is None:
            handle = str(self._next_handle)
            self._next_handle += 1
            self._handles[id(tag)] = handle
            self._nodes[handle] = tag
        return handle

    def _tag(self, handle: str) -> Tag:
        tag = self._nodes.get(handle)
        if tag is None or tag.parent is None:
            raise ApplyError(f"Element {handle} is no longer attached to the document")
        return tag

    async def snapshot(self, selector: str) -> BeautifulSoup:
        for tag in self.soup.select(selector):
            self._register(tag)
        stamped: List[Tag] = []
        for handle, tag in self._nodes.items():
            if tag.parent is None:
                continue
            tag[NODE_ATTR] = handle
            stamped.append(tag)
        markup = str(self.soup)
        for tag in stamped:
            del tag[NODE_ATTR]
        return BeautifulSoup(markup, "html.parser")

    async def set_attribute(self, handle: str, name: str, value: str) -> None:
        self._tag(handle)[name] = value

    async def remove_attribute(self, handle: str, name: str) -> None:
        tag = self._tag(handle)
        if name in tag.attrs:
            del tag[name]

    async def set_text(self, handle: str, text: str) -> None:
        self._tag(handle).string = text

    async def inner_html(self, handle: str) -> str:
        return "".join(str(child) for child in self._tag(handle).contents)

    async def set_inner_html(self, handle: str, markup: str) -> None:
        tag = self._tag(handle)
        tag.clear()
        for child in list(BeautifulSoup(markup, "html.parser").contents):
            tag.append(child.extract())

    async def insert_before(
        self, handle: str, tag: str, attrs: Dict[str, str], text: str
    ) -> None:
        target = self._tag(handle)
        element = self.soup.new_tag(tag, attrs=dict(attrs))
        element.string = text
        target.insert_before(element)

    async def remove_element(self, handle: str) -> None:
        tag = self._tag(handle)
        tag.extract()
        self._nodes.pop(handle, None)
        self._handles.pop(id(tag), None)

    async def bounding_box(self, handle: str) -> Optional[Rect]:
        return None

    async def page_bounds(self) -> Optional[Rect]:
        return None

    async def background_color(self) -> str:
        return "#ffffff"

    async def wait_for_media(self, handle: str, timeout: float) -> MediaState:
        tag = self._nodes.get(handle)
        src = tag.get("src") if tag is not None else None
        return MediaState(loaded=False, current_src=src)

    async def screenshot(self, clip: Rect) -> Optional[bytes]:
        return None

    async def region_items(self, clip: Rect, selector: str) -> List[RegionItem]:
        return []

    async def rasterize_svg(self, markup: str, width: int, height: int) -> Optional[bytes]:
        return None

    async def mark(self, handle: str, status: str) -> None:
        self.marks[handle] = status

    async def clear_marks(self) -> None:
        self.marks.clear()

    async def flush(self) -> None:
        return None

    async def content(self) -> str:
        return str(self.soup)
