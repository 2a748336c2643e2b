"""Shared fixtures: stamped snapshots, scripted inference clients and sample pages."""

from __future__ import annotations

import asyncio
import base64
import io
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from bs4 import BeautifulSoup
from PIL import Image

from a11y_remedy.config import RemediationConfig
from a11y_remedy.dom import NODE_ATTR, Node, collect_nodes
from a11y_remedy.models import Category, Phase
from a11y_remedy.schemas import (
    AltTextAnalysis,
    AltTextResponse,
    FormAccessibilityAnalysis,
    FormFieldHelp,
    LinkAccessibilityAnalysis,
    LinkTextEnhancement,
)

SAMPLE_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>Bike Shop</title>
  <meta name="description" content="Bicycles and accessories for commuters">
</head>
<body>
  <nav><ul>
    <li><a href="/">Home</a></li>
    <li><a href="/pricing">Learn more</a></li>
    <li><a href="/support">Contact support team</a></li>
  </ul></nav>
  <main>
    <h1>Spring collection</h1>
    <p>Our newest commuter bike <img src="bike.jpg"></p>
    <img src="team.jpg" alt="Company photo">
    <form>
      <h2>Create Account</h2>
      <input type="email" placeholder="you@example.com" required>
      <label for="pw">Password</label>
      <input type="password" id="pw">
      <button type="submit">Sign up</button>
    </form>
  </main>
</body>
</html>
"""


def default_result(category: Category, phase: Phase, subject: Optional[Dict[str, str]] = None):
    """A plausible structured reply for each (category, phase) pair."""
    if category is Category.IMAGE and phase is Phase.GENERATE:
        return AltTextResponse(
            classification="simple_informative",
            alt_text="A red commuter bicycle",
            reasoning="Product photo referenced by the caption",
        )
    if category is Category.IMAGE:
        return AltTextAnalysis(
            page_context="Bike shop",
            surrounding_context="Product listing",
            classification="simple_informative",
            alt_text_analysis=["Describes the subject"],
            is_sufficient=True,
        )
    if category is Category.FORM_FIELD and phase is Phase.GENERATE:
        return FormFieldHelp(
            field_purpose="Collect the account email",
            input_type="email",
            label="Email address",
            aria_label="Email address",
        )
    if category is Category.FORM_FIELD:
        return FormAccessibilityAnalysis(
            accessibility_score=8,
            label_quality="good",
            placeholder_appropriateness="good",
            issues_found=[],
            suggestions=[],
            is_accessible=True,
            reasoning="Field has a visible label",
        )
    if phase is Phase.GENERATE:
        return LinkTextEnhancement(
            current_text_analysis="Generic text",
            link_purpose="Opens the pricing page",
            suggested_text="Pricing plans for teams",
            aria_label="Pricing plans for teams",
            improvement_reasoning="Names the destination",
        )
    return LinkAccessibilityAnalysis(
        accessibility_score=9,
        text_clarity="excellent",
        purpose_clarity="good",
        issues_found=[],
        suggestions=[],
        is_accessible=True,
        reasoning="Destination is clear",
    )


class ScriptedClient:
    """Stands in for ``InferenceClient``; replies come from ``responder``."""

    def __init__(self, responder: Optional[Callable] = None, delay: float = 0.0) -> None:
        self.responder = responder or default_result
        self.delay = delay
        self.calls: List[Tuple[Category, Phase, Dict[str, str]]] = []
        self.active = 0
        self.max_active = 0

    async def infer(self, category, phase, context, bundle, subject=None):
        self.calls.append((category, phase, dict(subject or {})))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            result = self.responder(category, phase, subject)
            if isinstance(result, BaseException):
                raise result
            return result
        finally:
            self.active -= 1

    def count(self, category: Category, phase: Phase) -> int:
        return sum(1 for call in self.calls if call[0] is category and call[1] is phase)


def png_bytes(size: Tuple[int, int], color: str = "#cc3333") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def png_data_url(size: Tuple[int, int]) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(size)).decode("ascii")


@pytest.fixture
def config(tmp_path) -> RemediationConfig:
    return RemediationConfig(
        output_root=tmp_path / "output",
        max_retries=0,
        retry_backoff=0.0,
        capture_timeout=2.0,
        svg_timeout=1.0,
    )


@pytest.fixture
def stamp() -> Callable[[str, str], List[Node]]:
    """Parse markup and stamp every element matching ``selector`` with a handle."""

    def _stamp(html: str, selector: str) -> List[Node]:
        document = BeautifulSoup(html, "html.parser")
        for index, element in enumerate(document.select(selector), start=1):
            element[NODE_ATTR] = str(index)
        return collect_nodes(document, selector)

    return _stamp


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedClient]:
    return ScriptedClient
