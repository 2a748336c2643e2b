"""Per-category capability set driving the generic remediation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .classifier import (
    FORM_FIELD_SELECTOR,
    IMAGE_SELECTOR,
    LINK_SELECTOR,
    accessible_name,
    classify_form_field,
    classify_image,
    classify_link,
    input_type,
    link_text,
)
from .config import RemediationConfig
from .context import (
    extract_form_context,
    extract_image_context,
    extract_link_context,
    help_text,
    link_destination,
)
from .dom import Node, Rect
from .models import Category, Classification, ContextSummary
from .utils import squash, truncate

HEADING_TAGS = "h1, h2, h3, h4, h5, h6"


def image_margin(rect: Rect) -> float:
    return max(rect.width, rect.height) * 1.5


def fixed_margin(rect: Rect) -> float:
    return 150.0


def describe_image(node: Node) -> Dict[str, str]:
    element = node.element
    subject = {"Element": node.tag_name}
    current = squash(element.get("alt") or element.get("aria-label"))
    if current:
        subject["Current alt text"] = truncate(current, 200)
    return subject


def describe_form_field(node: Node) -> Dict[str, str]:
    element = node.element
    return {
        "Label": accessible_name(element, node.document),
        "Placeholder": squash(element.get("placeholder")),
        "ARIA label": squash(element.get("aria-label")),
        "Help text": truncate(help_text(element, node.document), 120),
        "Input type": input_type(element),
        "Required": "true" if element.has_attr("required") else "false",
    }


def describe_link(node: Node) -> Dict[str, str]:
    element = node.element
    return {
        "Link text": link_text(element),
        "Destination": truncate(
            squash(element.get("href") or element.get("data-href") or element.get("onclick")),
            120,
        ),
    }


@dataclass(frozen=True)
class CategorySpec:
    """Everything that differs between images, form fields and links."""

    category: Category
    selector: str
    classify: Callable[[Node, RemediationConfig], Classification]
    extract_context: Callable[..., ContextSummary]
    describe: Callable[[Node], Dict[str, str]]
    context_margin: Callable[[Rect], float]
    annotation_selector: str
    highlight: str
    isolated_min_size: Optional[Tuple[int, int]]
    # Analysis also re-checks nodes that are still unremediated.
    analyze_unremediated: bool = False


CATEGORY_SPECS: Dict[Category, CategorySpec] = {
    Category.IMAGE: CategorySpec(
        category=Category.IMAGE,
        selector=IMAGE_SELECTOR,
        classify=classify_image,
        extract_context=extract_image_context,
        describe=describe_image,
        context_margin=image_margin,
        annotation_selector=f"p, {HEADING_TAGS}, span, a, button, label, figcaption",
        highlight="#2563eb",
        isolated_min_size=None,
    ),
    Category.FORM_FIELD: CategorySpec(
        category=Category.FORM_FIELD,
        selector=FORM_FIELD_SELECTOR,
        classify=classify_form_field,
        extract_context=extract_form_context,
        describe=describe_form_field,
        context_margin=fixed_margin,
        annotation_selector=f"label, input, textarea, select, button, legend, {HEADING_TAGS}",
        highlight="#ef4444",
        isolated_min_size=(200, 50),
        analyze_unremediated=True,
    ),
    Category.LINK: CategorySpec(
        category=Category.LINK,
        selector=LINK_SELECTOR,
        classify=classify_link,
        extract_context=extract_link_context,
        describe=describe_link,
        context_margin=fixed_margin,
        annotation_selector=f"a, button, {HEADING_TAGS}, p, span",
        highlight="#059669",
        isolated_min_size=(200, 40),
    ),
}


def spec_for(category: Category) -> CategorySpec:
    return CATEGORY_SPECS[category]


def destination_hint(node: Node, base_url: str = "") -> str:
    """Short destination caption for synthetic link drawings."""
    return truncate(link_destination(node.element, base_url), 60)
