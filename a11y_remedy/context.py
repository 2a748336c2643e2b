"""Bounded textual context gathered from the document tree around a node."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from .classifier import (
    FORM_FIELD_SELECTOR,
    LINK_SELECTOR,
    accessible_name,
    input_type,
    link_text,
)
from .config import RemediationConfig
from .dom import Node, Rect, element_text, find_by_id
from .images import file_name_from_src
from .models import Category, ContextSummary, PageMetadata
from .utils import squash, truncate

PAGE_CONTEXT_LIMIT = 400
SURROUNDING_TEXT_LIMIT = 300
PARENT_TEXT_LIMIT = 200
FORM_CONTEXT_LIMIT = 300
INPUT_CONTEXT_LIMIT = 200
LINK_CONTEXT_LIMIT = 300
DESTINATION_LIMIT = 200
META_DESCRIPTION_LIMIT = 100
MAX_SELECT_OPTIONS = 8

HEADINGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
HELP_SELECTORS = ".help-text, .form-help, .field-help, [class*='help'], .hint, .description"
FILE_TYPES = {"pdf", "doc", "docx", "zip", "mp4", "mp3", "jpg", "png"}

ContextBuilder = Callable[..., ContextSummary]


def _join(parts: List[str], limit: int) -> str:
    return truncate(". ".join(part for part in parts if part), limit)


def _index_of(element: Tag, candidates: List[Tag]) -> int:
    for index, candidate in enumerate(candidates):
        if candidate is element:
            return index
    return -1


def page_metadata(document: BeautifulSoup, source_url: str) -> PageMetadata:
    """Title and meta description of a document."""
    title: Optional[str] = None
    if document.title and document.title.string:
        title = document.title.string.strip() or None
    if not title:
        heading = document.find("h1")
        if heading is not None:
            title = element_text(heading) or None

    description: Optional[str] = None
    description_tag = document.find("meta", attrs={"name": "description"})
    if description_tag and description_tag.get("content"):
        description = description_tag["content"].strip()

    return PageMetadata(source_url=source_url, title=title, description=description)


def page_context(element: Tag, document: BeautifulSoup) -> str:
    """Page purpose: title, description, headings and coarse page type."""
    parts: List[str] = []
    metadata = page_metadata(document, "")
    if document.title and document.title.string and document.title.string.strip():
        parts.append(f"Page: {document.title.string.strip()}")
    if metadata.description:
        parts.append(f"Purpose: {metadata.description[:META_DESCRIPTION_LIMIT]}")

    main_heading = document.find("h1")
    if main_heading is not None:
        parts.append(f"Main heading: {element_text(main_heading)}")

    container = element.find_parent(["section", "article", "div"])
    if container is not None:
        section_heading = container.find(HEADINGS)
        if section_heading is not None and section_heading is not main_heading:
            parts.append(f"Section: {element_text(section_heading)}")

    page_types: List[str] = []
    if document.find("form"):
        page_types.append("form page")
    if document.select_one(".product, [class*='product']"):
        page_types.append("product page")
    if document.find("article"):
        page_types.append("article page")
    if document.find("nav"):
        page_types.append("navigation present")
    if page_types:
        parts.append(f"Page type: {', '.join(page_types)}")
    return _join(parts, PAGE_CONTEXT_LIMIT)


def image_position(element: Tag, rect: Optional[Rect], bounds: Optional[Rect]) -> str:
    position: List[str] = []
    if rect is not None:
        if rect.width < 50 or rect.height < 50:
            position.append("small icon")
        elif rect.width > 300 or rect.height > 300:
            position.append("large image")
        if bounds is not None and bounds.height > 0:
            if rect.y < bounds.height * 0.2:
                position.append("top of page")
            elif rect.y > bounds.height * 0.8:
                position.append("bottom of page")

    parent = element.parent
    if isinstance(parent, Tag):
        siblings = parent.find_all(True, recursive=False)
        index = _index_of(element, siblings)
        if index == 0:
            position.append("first in container")
        elif index == len(siblings) - 1:
            position.append("last in container")
        if parent.name in ("button", "a"):
            position.append(f"inside {parent.name}")
    return ", ".join(position)


def surrounding_text(element: Tag, document: BeautifulSoup) -> str:
    """Parent text, interactive wrapper text, figure caption and description."""
    parts: List[str] = []
    parent = element.parent
    if isinstance(parent, Tag):
        texts = [
            squash(text)
            for text in parent.find_all(string=True)
            if squash(text) and not any(ancestor is element for ancestor in text.parents)
        ]
        if texts:
            parts.append(truncate(" ".join(texts), PARENT_TEXT_LIMIT))

    wrapper = element.find_parent(["button", "a"])
    if wrapper is not None:
        wrapper_text = element_text(wrapper)
        alt = squash(element.get("alt"))
        if alt:
            wrapper_text = squash(wrapper_text.replace(alt, "", 1))
        if wrapper_text:
            parts.append(f'Button/Link text: "{wrapper_text}"')

    figure = element.find_parent("figure")
    if figure is not None:
        caption = figure.find("figcaption")
        if caption is not None:
            parts.append(f'Caption: "{element_text(caption)}"')

    for described_id in (element.get("aria-describedby") or "").split():
        described = find_by_id(document, described_id)
        if described is not None:
            parts.append(f'Description: "{element_text(described)}"')
    return _join(parts, SURROUNDING_TEXT_LIMIT)


def extract_image_context(
    node: Node,
    config: RemediationConfig,
    rect: Optional[Rect] = None,
    bounds: Optional[Rect] = None,
    base_url: str = "",
) -> ContextSummary:
    element = node.element
    facts: List[str] = []
    name = file_name_from_src(element.get("src"), limit=60)
    if name:
        facts.append(f"File: {name}")
    current = squash(element.get("alt") or element.get("aria-label"))
    if current:
        facts.append(f'Current alt: "{truncate(current, 100)}"')
    position = image_position(element, rect, bounds)
    if position:
        facts.append(f"Position: {position}")

    sections = {
        "image": _join(facts, PARENT_TEXT_LIMIT),
        "surrounding": surrounding_text(element, node.document),
        "page": page_context(element, node.document),
    }
    return _summary(sections, config)


def _form_fields(scope: Tag) -> List[Tag]:
    return scope.select(FORM_FIELD_SELECTOR)


def previous_field(element: Tag, document: BeautifulSoup) -> Optional[Tag]:
    scope = element.find_parent("form") or document
    fields = _form_fields(scope)
    index = _index_of(element, fields)
    return fields[index - 1] if index > 0 else None


def help_text(element: Tag, document: BeautifulSoup) -> str:
    for described_id in (element.get("aria-describedby") or "").split():
        described = find_by_id(document, described_id)
        if described is not None:
            return element_text(described)
    parent = element.parent
    if isinstance(parent, Tag):
        helper = parent.select_one(HELP_SELECTORS)
        if helper is not None:
            return element_text(helper)
    return ""


def input_context(element: Tag, document: BeautifulSoup) -> str:
    parts: List[str] = [f"Input type: {input_type(element)}"]
    if element.has_attr("required"):
        parts.append("Required field")
    if element.get("pattern"):
        parts.append(f"Pattern: {element['pattern']}")
    if element.get("maxlength"):
        parts.append(f"Max length: {element['maxlength']}")

    form = element.find_parent("form")
    if form is not None:
        fields = _form_fields(form)
        parts.append(f"Field {_index_of(element, fields) + 1} of {len(fields)}")

    fieldset = element.find_parent("fieldset")
    if fieldset is not None:
        legend = fieldset.find("legend")
        if legend is not None:
            parts.append(f"In section: {element_text(legend)}")

    previous = previous_field(element, document)
    if previous is not None:
        previous_label = accessible_name(previous, document)
        if previous_label:
            parts.append(f"Previous field: {previous_label}")

    if element.name == "select":
        options = [element_text(option) for option in element.find_all("option")]
        options = [option for option in options if option][:MAX_SELECT_OPTIONS]
        if options:
            parts.append(f"Options: {', '.join(options)}")
    return _join(parts, INPUT_CONTEXT_LIMIT)


def form_context(element: Tag) -> str:
    form = element.find_parent("form")
    if form is None:
        return ""
    parts: List[str] = []
    heading = form.find(HEADINGS) or form.find_previous(HEADINGS)
    if heading is not None:
        parts.append(f"Form title: {element_text(heading)}")
    submit = form.select_one('button[type="submit"], input[type="submit"]')
    if submit is not None:
        action = element_text(submit) or squash(submit.get("value")) or "Submit"
        parts.append(f"Submit action: {action}")
    parts.append(f"Form has {len(_form_fields(form))} total fields")
    for fieldset in form.find_all("fieldset"):
        legend = fieldset.find("legend")
        if legend is not None:
            parts.append(f"Section: {element_text(legend)}")
    return _join(parts, FORM_CONTEXT_LIMIT)


def current_field_state(element: Tag, document: BeautifulSoup) -> Dict[str, str]:
    """Author-visible naming state of a field: label, placeholder, aria-label and help."""
    return {
        "label": accessible_name(element, document),
        "placeholder": squash(element.get("placeholder")),
        "aria_label": squash(element.get("aria-label")),
        "help_text": help_text(element, document),
    }


def extract_form_context(
    node: Node,
    config: RemediationConfig,
    rect: Optional[Rect] = None,
    bounds: Optional[Rect] = None,
    base_url: str = "",
) -> ContextSummary:
    element = node.element
    state = current_field_state(element, node.document)
    current = [
        f"Current label: {state['label']}" if state["label"] else "",
        f"Help text: {truncate(state['help_text'], 80)}" if state["help_text"] else "",
    ]
    sections = {
        "input": input_context(element, node.document),
        "form": form_context(element),
        "current": _join(current, PARENT_TEXT_LIMIT),
        "page": page_context(element, node.document),
    }
    return _summary(sections, config)


def previous_link(element: Tag, document: BeautifulSoup) -> Optional[Tag]:
    links = document.select(LINK_SELECTOR)
    index = _index_of(element, links)
    return links[index - 1] if index > 0 else None


def link_context(element: Tag, document: BeautifulSoup) -> str:
    parts: List[str] = [f"Element: {element.name}"]
    if element.get("target"):
        parts.append(f"Target: {element['target']}")
    if element.has_attr("download"):
        parts.append("Download link")
    if element.find_parent("nav") is not None:
        parts.append("In navigation")
    if element.find_parent("header") is not None:
        parts.append("In header")
    if element.find_parent("footer") is not None:
        parts.append("In footer")
    if element.find_parent(["main", "article"]) is not None:
        parts.append("In main content")
    if element.find_parent("button") is not None:
        parts.append("Inside button")
    list_parent = element.find_parent(["ul", "ol"])
    if list_parent is not None:
        parts.append(f"In list of {len(list_parent.find_all('li'))} items")

    parent = element.parent
    if isinstance(parent, Tag):
        own = element_text(element)
        parent_text = element_text(parent)
        if own:
            parent_text = squash(parent_text.replace(own, "", 1))
        if len(parent_text) > 10:
            parts.append(f'Context: "{parent_text[:50]}"')

    previous = previous_link(element, document)
    if previous is not None:
        previous_text = link_text(previous)
        if previous_text:
            parts.append(f'Previous link: "{previous_text}"')
    return _join(parts, LINK_CONTEXT_LIMIT)


def link_destination(element: Tag, base_url: str = "") -> str:
    parts: List[str] = []
    href = element.get("href")
    if href:
        absolute = urljoin(base_url, href) if base_url else href
        parsed = urlparse(absolute)
        base_host = urlparse(base_url).hostname if base_url else None
        if parsed.scheme in ("", "http", "https"):
            if parsed.hostname and parsed.hostname != base_host:
                parts.append(f"External site: {parsed.hostname}")
            else:
                parts.append("Internal link")
            segments = [segment for segment in parsed.path.split("/") if segment]
            if segments:
                parts.append(f"Path: /{'/'.join(segments)}")
            if parsed.query:
                parts.append(f"Has parameters: ?{parsed.query[:49]}")
            if parsed.fragment:
                parts.append(f"Anchor: #{parsed.fragment}")
            if segments and "." in segments[-1]:
                extension = segments[-1].rsplit(".", 1)[-1].lower()
                if extension in FILE_TYPES:
                    parts.append(f"File type: {extension.upper()}")
        else:
            parts.append(f"URL: {href[:100]}")
    if element.get("onclick"):
        parts.append(f"JavaScript action: {element['onclick'][:50]}")
    if element.get("data-href"):
        parts.append(f"Data destination: {element['data-href']}")
    return _join(parts, DESTINATION_LIMIT)


def extract_link_context(
    node: Node,
    config: RemediationConfig,
    rect: Optional[Rect] = None,
    bounds: Optional[Rect] = None,
    base_url: str = "",
) -> ContextSummary:
    element = node.element
    sections = {
        "link": link_context(element, node.document),
        "destination": link_destination(element, base_url),
        "page": page_context(element, node.document),
    }
    return _summary(sections, config)


def _summary(sections: Dict[str, str], config: RemediationConfig) -> ContextSummary:
    text = _join([sections[key] for key in sections], config.context_char_limit)
    return ContextSummary(text=text, sections=sections)


CONTEXT_BUILDERS: Dict[Category, ContextBuilder] = {
    Category.IMAGE: extract_image_context,
    Category.FORM_FIELD: extract_form_context,
    Category.LINK: extract_link_context,
}


def extract_context(
    node: Node,
    category: Category,
    config: RemediationConfig,
    rect: Optional[Rect] = None,
    bounds: Optional[Rect] = None,
    base_url: str = "",
) -> ContextSummary:
    """Dispatch to the category's builder; the result never exceeds ``context_char_limit``."""
    return CONTEXT_BUILDERS[category](node, config, rect=rect, bounds=bounds, base_url=base_url)
