"""Configuration objects and constants for the remediation pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Tuple

from .models import Category

DEFAULT_ENDPOINT = os.getenv(
    "A11Y_REMEDY_ENDPOINT", "http://localhost:1234/v1/chat/completions"
)
DEFAULT_MODEL_ID = os.getenv("A11Y_REMEDY_MODEL", "gemma-3n-4b-it")

# Exact-match only: "Company photo" is a real description, "photo" is not.
GENERIC_ALT_TERMS: FrozenSet[str] = frozenset(
    {"image", "photo", "picture", "img", "graphic", "icon"}
)

VAGUE_LINK_PHRASES: Tuple[str, ...] = (
    "click here", "here", "read more", "learn more", "more", "continue",
    "go", "view", "see", "check", "find out", "discover", "explore",
    "download", "get", "try", "start", "begin", "next", "previous",
    "back", "forward", "submit", "send", "contact", "call", "email",
    "link", "button", "this", "that", "it", "details", "info",
    "page", "site", "website", "portal", "platform", "tool",
)

DESCRIPTIVE_LINK_TERMS: Tuple[str, ...] = (
    "home", "about", "contact", "products", "services", "blog", "news",
    "support", "help", "documentation", "guide", "tutorial", "pricing",
    "login", "signup", "register", "profile", "account", "dashboard",
    "settings", "preferences", "cart", "checkout", "order", "search",
)

# Words that never make vague link text descriptive on their own.
LINK_FILLER_WORDS: FrozenSet[str] = frozenset(
    {"a", "an", "the", "to", "of", "for", "and", "or", "on", "in", "at",
     "about", "our", "your", "me", "us", "now", "please", "all"}
)


@dataclass
class RemediationConfig:
    """Top-level settings that control capture, inference and fan-out behaviour."""

    output_root: Path = Path("output")
    endpoint: str = DEFAULT_ENDPOINT
    model_id: str = DEFAULT_MODEL_ID
    temperature: float = 0.2
    request_timeout: float = 60.0
    max_retries: int = 2
    retry_backoff: float = 1.0
    # 0 keeps every node of a phase in flight at once.
    max_concurrency: int = 4
    capture_timeout: float = 10.0
    svg_timeout: float = 5.0
    settle_delay: float = 0.0
    context_char_limit: int = 400
    min_informative_image_side: int = 50
    wait_after_load: float = 1.0
    navigation_timeout: float = 30.0
    categories: Tuple[Category, ...] = (
        Category.IMAGE,
        Category.FORM_FIELD,
        Category.LINK,
    )
    generic_alt_terms: FrozenSet[str] = GENERIC_ALT_TERMS
    vague_link_phrases: Tuple[str, ...] = VAGUE_LINK_PHRASES
    descriptive_link_terms: Tuple[str, ...] = DESCRIPTIVE_LINK_TERMS
    link_filler_words: FrozenSet[str] = LINK_FILLER_WORDS
