"""Utility helpers for string normalization and path handling."""

from __future__ import annotations

import re

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
WHITESPACE_PATTERN = re.compile(r"\s+")


def slugify(value: str, fallback: str = "page") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def squash(value: str | None) -> str:
    """Collapse runs of whitespace and trim."""
    if not value:
        return ""
    return WHITESPACE_PATTERN.sub(" ", value).strip()


def truncate(value: str, limit: int) -> str:
    """Cut text to at most ``limit`` characters without trailing whitespace."""
    if limit <= 0:
        return ""
    if len(value) <= limit:
        return value
    return value[:limit].rstrip()
