"""Writes generated fixes into the document and undoes them on request."""

from __future__ import annotations

import logging
from typing import Dict, List

from .classifier import accessible_name, link_text
from .dom import (
    ADDED_ATTR,
    LABEL_MARKER,
    MARKER_ATTR,
    ORIGINAL_ATTR_PREFIX,
    ORIGINAL_HTML_ATTR,
    ORIGINAL_TEXT_ATTR,
    DocumentHost,
    Node,
    collect_nodes,
    element_text,
)
from .errors import ApplyError
from .models import Category, Phase, RemediationOutcome
from .schemas import AltTextResponse, FormFieldHelp, LinkTextEnhancement, StrictResult
from .utils import squash

logger = logging.getLogger("a11y_remedy")

GENERATED_ID_PREFIX = "a11y-remedy-"


class _Provenance:
    """Tracks what one apply call changed on a node so it can be reverted later."""

    def __init__(self, host: DocumentHost, node: Node) -> None:
        self.host = host
        self.node = node
        self.added: List[str] = (node.element.get(ADDED_ATTR) or "").split()

    async def set(self, name: str, value: str) -> None:
        element = self.node.element
        if element.has_attr(name):
            original_key = ORIGINAL_ATTR_PREFIX + name
            if name not in self.added and not element.has_attr(original_key):
                await self.host.set_attribute(self.node.handle, original_key, element[name])
        elif name not in self.added:
            self.added.append(name)
            await self.host.set_attribute(self.node.handle, ADDED_ATTR, " ".join(self.added))
        await self.host.set_attribute(self.node.handle, name, value)


class RemediationApplier:
    """Applies generation results; failures are reported in the outcome, never raised."""

    def __init__(self, host: DocumentHost) -> None:
        self.host = host

    async def apply(
        self, node: Node, category: Category, result: StrictResult
    ) -> RemediationOutcome:
        outcome = RemediationOutcome(
            handle=node.handle,
            category=category,
            phase=Phase.GENERATE,
            success=False,
            result=result,
        )
        if category is Category.FORM_FIELD and accessible_name(node.element, node.document):
            # Author-named fields are left unmarked.
            outcome.success = True
            outcome.skipped = True
            return outcome
        try:
            # Marker first so a partially applied node is still revertible.
            await self.host.set_attribute(node.handle, MARKER_ATTR, category.value)
            if category is Category.IMAGE:
                fields = await self._apply_image(node, result)
            elif category is Category.FORM_FIELD:
                fields = await self._apply_form_field(node, result)
            else:
                fields = await self._apply_link(node, result)
        except ApplyError as exc:
            logger.warning("Could not apply %s fix to %s: %s", category.value, node.handle, exc)
            outcome.error_kind = ApplyError.kind
            outcome.error_detail = str(exc)
            return outcome
        outcome.success = True
        outcome.applied_fields = fields
        return outcome

    async def _apply_image(self, node: Node, result: StrictResult) -> Dict[str, str]:
        if not isinstance(result, AltTextResponse):
            raise ApplyError(f"expected alt text result, got {type(result).__name__}")
        provenance = _Provenance(self.host, node)
        text = result.alt_text
        if node.tag_name == "svg":
            if not text:
                await provenance.set("aria-hidden", "true")
                return {"aria-hidden": "true"}
            await provenance.set("aria-label", text)
            return {"aria-label": text}
        await provenance.set("alt", text)
        return {"alt": text}

    async def _apply_form_field(self, node: Node, result: StrictResult) -> Dict[str, str]:
        if not isinstance(result, FormFieldHelp):
            raise ApplyError(f"expected form field result, got {type(result).__name__}")
        element = node.element
        label_text = squash(result.label) or squash(result.aria_label)
        if not label_text:
            raise ApplyError("result carries no label text")

        provenance = _Provenance(self.host, node)
        field_id = element.get("id")
        if not field_id:
            field_id = f"{GENERATED_ID_PREFIX}{node.handle}"
            await provenance.set("id", field_id)

        if await self._reuse_empty_label(field_id, label_text):
            return {"label": label_text}
        try:
            await self.host.insert_before(
                node.handle,
                "label",
                {"for": field_id, MARKER_ATTR: LABEL_MARKER},
                label_text,
            )
        except ApplyError as exc:
            if element.has_attr("aria-label"):
                raise
            logger.debug("Label insertion for %s failed (%s); using aria-label", node.handle, exc)
            aria_label = squash(result.aria_label) or label_text
            await provenance.set("aria-label", aria_label)
            return {"aria-label": aria_label}
        return {"label": label_text}

    async def _reuse_empty_label(self, field_id: str, text: str) -> bool:
        """Fill an author ``label[for]`` that exists but has no text."""
        selector = f'label[for="{field_id}"]'
        snapshot = await self.host.snapshot(selector)
        for label in collect_nodes(snapshot, selector):
            if element_text(label.element):
                continue
            await self.host.set_attribute(label.handle, MARKER_ATTR, LABEL_MARKER)
            await self.host.set_attribute(label.handle, ORIGINAL_TEXT_ATTR, "")
            await self.host.set_text(label.handle, text)
            return True
        return False

    async def _apply_link(self, node: Node, result: StrictResult) -> Dict[str, str]:
        if not isinstance(result, LinkTextEnhancement):
            raise ApplyError(f"expected link text result, got {type(result).__name__}")
        new_text = squash(result.suggested_text)
        if not new_text:
            raise ApplyError("result carries no suggested text")

        element = node.element
        previous = link_text(element)
        if not element.has_attr(ORIGINAL_TEXT_ATTR):
            await self.host.set_attribute(node.handle, ORIGINAL_TEXT_ATTR, element_text(element))
            if element.find(True) is not None:
                markup = await self.host.inner_html(node.handle)
                await self.host.set_attribute(node.handle, ORIGINAL_HTML_ATTR, markup)
        await self.host.set_text(node.handle, new_text)
        fields = {"text": new_text}

        provenance = _Provenance(self.host, node)
        if not element.has_attr("aria-label"):
            aria_label = squash(result.aria_label) or new_text
            await provenance.set("aria-label", aria_label)
            fields["aria-label"] = aria_label
        if not element.has_attr("title"):
            title = f'Improved from: "{previous}"'
            await provenance.set("title", title)
            fields["title"] = title
        return fields

    async def revert_all(self) -> int:
        """Undo every pipeline mutation that carries a provenance marker."""
        selector = f"[{MARKER_ATTR}]"
        snapshot = await self.host.snapshot(selector)
        reverted = 0
        for node in collect_nodes(snapshot, selector):
            try:
                await self._revert(node)
            except ApplyError as exc:
                logger.warning("Could not revert %s: %s", node.handle, exc)
                continue
            reverted += 1
        return reverted

    async def _revert(self, node: Node) -> None:
        element = node.element
        handle = node.handle
        if element.get(MARKER_ATTR) == LABEL_MARKER and not element.has_attr(ORIGINAL_TEXT_ATTR):
            await self.host.remove_element(handle)
            return

        if element.has_attr(ORIGINAL_HTML_ATTR):
            await self.host.set_inner_html(handle, element[ORIGINAL_HTML_ATTR])
            await self.host.remove_attribute(handle, ORIGINAL_HTML_ATTR)
        elif element.has_attr(ORIGINAL_TEXT_ATTR):
            await self.host.set_text(handle, element[ORIGINAL_TEXT_ATTR])
        if element.has_attr(ORIGINAL_TEXT_ATTR):
            await self.host.remove_attribute(handle, ORIGINAL_TEXT_ATTR)

        for name in (element.get(ADDED_ATTR) or "").split():
            await self.host.remove_attribute(handle, name)
        for key in list(element.attrs):
            if key.startswith(ORIGINAL_ATTR_PREFIX):
                await self.host.set_attribute(handle, key[len(ORIGINAL_ATTR_PREFIX):], element[key])
                await self.host.remove_attribute(handle, key)

        await self.host.remove_attribute(handle, ADDED_ATTR)
        await self.host.remove_attribute(handle, MARKER_ATTR)
