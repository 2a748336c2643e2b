"""Data models used throughout the remediation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Category(str, Enum):
    """Accessibility defect class handled by one pipeline run."""

    IMAGE = "image"
    FORM_FIELD = "form_field"
    LINK = "link"


class Phase(str, Enum):
    """Generation fixes missing content; analysis scores what exists."""

    GENERATE = "generate"
    ANALYZE = "analyze"


class Classification(str, Enum):
    """Per-phase tag attached to a node by the classifier."""

    NEEDS_GENERATION = "needs_generation"
    NEEDS_ANALYSIS = "needs_analysis"
    SKIP = "skip"


@dataclass
class PageMetadata:
    """Metadata describing the remediated page."""

    source_url: str
    title: Optional[str]
    description: Optional[str]


@dataclass
class CaptureBundle:
    """Isolated and in-context JPEG renderings of one node."""

    isolated: bytes
    context: bytes
    degraded: Tuple[str, ...] = ()
    natural_size: Optional[Tuple[int, int]] = None


@dataclass
class ContextSummary:
    """Bounded textual context assembled around a node."""

    text: str
    sections: Dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.text


@dataclass
class InferenceRequest:
    """Everything needed to ask the model about one node."""

    category: Category
    phase: Phase
    system_prompt: str
    instruction: str
    bundle: CaptureBundle
    schema_name: str
    schema: Dict[str, Any]
    max_tokens: int


@dataclass
class RemediationOutcome:
    """Result of processing one node in one phase."""

    handle: str
    category: Category
    phase: Phase
    success: bool
    applied_fields: Dict[str, str] = field(default_factory=dict)
    result: Any = None
    error_kind: Optional[str] = None
    error_detail: Optional[str] = None
    # Nothing to do; the node already had what the fix would add.
    skipped: bool = False
