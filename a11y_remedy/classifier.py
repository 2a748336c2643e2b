"""Deterministic predicates that decide which nodes need generation or analysis."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

from .config import RemediationConfig
from .dom import Node, element_text, find_by_id
from .models import Classification
from .utils import squash

IMAGE_SELECTOR = 'img, svg[role="img"]'
FORM_FIELD_SELECTOR = "input, textarea, select"
LINK_SELECTOR = "a[href], button[onclick], button[data-href]"

UNLABELABLE_INPUT_TYPES = frozenset({"hidden", "submit", "button", "reset"})
DECORATIVE_ROLES = frozenset({"presentation", "none"})

_PUNCTUATION = re.compile(r"[^\w\s]+", re.UNICODE)


def is_generic_description(text: str, terms: Iterable[str]) -> bool:
    """Exact, case-insensitive lexicon match; longer descriptions are never generic."""
    return squash(text).lower() in {term.lower() for term in terms}


def labelledby_text(element: Tag, document: BeautifulSoup) -> str:
    """Text of every element referenced by ``aria-labelledby``, joined."""
    ids = (element.get("aria-labelledby") or "").split()
    parts: List[str] = []
    for element_id in ids:
        target = find_by_id(document, element_id)
        if target is not None:
            text = element_text(target)
            if text:
                parts.append(text)
    return " ".join(parts)


def image_description(element: Tag, config: RemediationConfig) -> Optional[str]:
    """Current non-generic description carried by ``alt``, ``aria-label`` or an SVG title."""
    candidates = [element.get("alt"), element.get("aria-label")]
    if element.name == "svg":
        title = element.find("title")
        if title is not None:
            candidates.append(element_text(title))
    for candidate in candidates:
        text = squash(candidate)
        if text and not is_generic_description(text, config.generic_alt_terms):
            return text
    return None


def is_decorative_image(element: Tag) -> bool:
    alt = element.get("alt")
    if alt is not None and not alt.strip():
        return True
    return (element.get("role") or "").strip().lower() in DECORATIVE_ROLES


def classify_image(node: Node, config: RemediationConfig) -> Classification:
    element = node.element
    if image_description(element, config):
        return Classification.NEEDS_ANALYSIS
    if labelledby_text(element, node.document):
        return Classification.SKIP
    if is_decorative_image(element):
        return Classification.SKIP
    return Classification.NEEDS_GENERATION


def input_type(element: Tag) -> str:
    if element.name != "input":
        return element.name or "text"
    return (element.get("type") or "text").strip().lower()


def visible_label(element: Tag, document: BeautifulSoup) -> str:
    """Text of an explicit ``label[for]`` or of an enclosing label, minus the field value."""
    element_id = element.get("id")
    if element_id:
        for label in document.find_all("label", attrs={"for": element_id}):
            text = element_text(label)
            if text:
                return text
    parent_label = element.find_parent("label")
    if parent_label is not None:
        text = element_text(parent_label)
        value = squash(element.get("value"))
        if value:
            text = squash(text.replace(value, "", 1))
        if text:
            return text
    return ""


def accessible_name(element: Tag, document: BeautifulSoup) -> str:
    """Best current accessible name; placeholders never count."""
    return (
        visible_label(element, document)
        or squash(element.get("aria-label"))
        or labelledby_text(element, document)
    )


def classify_form_field(node: Node, config: RemediationConfig) -> Classification:
    element = node.element
    if input_type(element) in UNLABELABLE_INPUT_TYPES:
        return Classification.SKIP
    if accessible_name(element, node.document):
        return Classification.NEEDS_ANALYSIS
    return Classification.NEEDS_GENERATION


def link_text(element: Tag) -> str:
    """Visible text, else ``aria-label``, else ``title``."""
    return (
        element_text(element)
        or squash(element.get("aria-label"))
        or squash(element.get("title"))
    )


def _normalize(text: str) -> str:
    return squash(_PUNCTUATION.sub(" ", text.lower()))


def is_descriptive_link_text(text: str, config: RemediationConfig) -> bool:
    lowered = text.lower()
    return any(term in lowered for term in config.descriptive_link_terms)


def is_vague_link_text(text: str, config: RemediationConfig) -> bool:
    """Short text made only of vague phrases and filler, or a very short non-descriptive label."""
    normalized = _normalize(text)
    if not normalized:
        return False
    words = normalized.split()
    if len(words) <= 3:
        residue = f" {normalized} "
        matched = False
        # Longer phrases first so "read more" wins over "more".
        for phrase in sorted(config.vague_link_phrases, key=len, reverse=True):
            needle = f" {_normalize(phrase)} "
            while needle in residue:
                residue = residue.replace(needle, " ")
                matched = True
        leftover = [word for word in residue.split() if word not in config.link_filler_words]
        if matched and not leftover:
            return True
    return len(squash(text)) <= 8 and not is_descriptive_link_text(text, config)


def classify_link(node: Node, config: RemediationConfig) -> Classification:
    text = link_text(node.element)
    if not text:
        return Classification.SKIP
    if is_vague_link_text(text, config):
        return Classification.NEEDS_GENERATION
    return Classification.NEEDS_ANALYSIS
