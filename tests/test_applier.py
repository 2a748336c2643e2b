"""Tests for applying fixes with provenance and reverting them."""

import pytest
from bs4 import BeautifulSoup

from a11y_remedy.applier import RemediationApplier
from a11y_remedy.classifier import (
    FORM_FIELD_SELECTOR,
    IMAGE_SELECTOR,
    LINK_SELECTOR,
    classify_form_field,
)
from a11y_remedy.dom import MARKER_ATTR, ORIGINAL_HTML_ATTR, SoupDocument, collect_nodes
from a11y_remedy.models import Category, Classification, Phase

from conftest import default_result


async def _nodes(host, selector):
    snapshot = await host.snapshot(selector)
    return collect_nodes(snapshot, selector)


def _normalized(html):
    return str(BeautifulSoup(html, "html.parser"))


@pytest.mark.asyncio
async def test_image_alt_is_applied_and_reverted():
    html = '<p><img src="bike.jpg"></p>'
    host = SoupDocument(html)
    applier = RemediationApplier(host)
    node = (await _nodes(host, IMAGE_SELECTOR))[0]

    outcome = await applier.apply(node, Category.IMAGE, default_result(Category.IMAGE, Phase.GENERATE))

    img = host.soup.img
    assert outcome.success
    assert outcome.phase is Phase.GENERATE
    assert outcome.applied_fields == {"alt": "A red commuter bicycle"}
    assert img["alt"] == "A red commuter bicycle"
    assert img[MARKER_ATTR] == "image"

    assert await applier.revert_all() == 1
    assert str(host.soup) == _normalized(html)


@pytest.mark.asyncio
async def test_generic_alt_is_restored_on_revert():
    html = '<img src="team.jpg" alt="image">'
    host = SoupDocument(html)
    applier = RemediationApplier(host)
    node = (await _nodes(host, IMAGE_SELECTOR))[0]

    await applier.apply(node, Category.IMAGE, default_result(Category.IMAGE, Phase.GENERATE))
    assert host.soup.img["alt"] == "A red commuter bicycle"
    assert host.soup.img["data-a11y-remedy-original-alt"] == "image"

    await applier.revert_all()
    assert host.soup.img["alt"] == "image"
    assert str(host.soup) == _normalized(html)


@pytest.mark.asyncio
async def test_decorative_svg_is_hidden():
    host = SoupDocument('<svg role="img"><path d="M0 0"/></svg>')
    applier = RemediationApplier(host)
    node = (await _nodes(host, IMAGE_SELECTOR))[0]
    result = default_result(Category.IMAGE, Phase.GENERATE).model_copy(
        update={"classification": "decorative", "alt_text": ""}
    )

    outcome = await applier.apply(node, Category.IMAGE, result)

    assert outcome.applied_fields == {"aria-hidden": "true"}
    assert host.soup.svg["aria-hidden"] == "true"


@pytest.mark.asyncio
async def test_form_field_gets_inserted_label():
    html = '<form><input type="email" placeholder="you@example.com"></form>'
    host = SoupDocument(html)
    applier = RemediationApplier(host)
    node = (await _nodes(host, FORM_FIELD_SELECTOR))[0]

    outcome = await applier.apply(
        node, Category.FORM_FIELD, default_result(Category.FORM_FIELD, Phase.GENERATE)
    )

    label = host.soup.find("label")
    field = host.soup.input
    assert outcome.applied_fields == {"label": "Email address"}
    assert label.get_text() == "Email address"
    assert label["for"] == field["id"]
    assert label[MARKER_ATTR] == "label"
    assert "aria-label" not in field.attrs

    renewed = (await _nodes(host, FORM_FIELD_SELECTOR))[0]
    assert classify_form_field(renewed, None) is Classification.NEEDS_ANALYSIS

    assert await applier.revert_all() == 2
    assert str(host.soup) == _normalized(html)


@pytest.mark.asyncio
async def test_empty_author_label_is_filled_not_duplicated():
    html = '<label for="phone"></label><input id="phone" type="tel">'
    host = SoupDocument(html)
    applier = RemediationApplier(host)
    node = (await _nodes(host, FORM_FIELD_SELECTOR))[0]

    await applier.apply(node, Category.FORM_FIELD, default_result(Category.FORM_FIELD, Phase.GENERATE))

    labels = host.soup.find_all("label")
    assert len(labels) == 1
    assert labels[0].get_text() == "Email address"

    await applier.revert_all()
    assert len(host.soup.find_all("label")) == 1
    assert host.soup.label.get_text() == ""
    assert MARKER_ATTR not in host.soup.label.attrs


@pytest.mark.asyncio
async def test_labelled_field_is_left_alone():
    html = '<label for="n">Name</label><input id="n">'
    host = SoupDocument(html)
    applier = RemediationApplier(host)
    node = (await _nodes(host, FORM_FIELD_SELECTOR))[0]

    outcome = await applier.apply(
        node, Category.FORM_FIELD, default_result(Category.FORM_FIELD, Phase.GENERATE)
    )

    assert outcome.success
    assert outcome.skipped
    assert outcome.applied_fields == {}
    assert MARKER_ATTR not in host.soup.input.attrs
    assert str(host.soup) == _normalized(html)
    assert await applier.revert_all() == 0


@pytest.mark.asyncio
async def test_link_text_is_rewritten_and_restored():
    html = '<p><a href="/pricing">Learn more</a></p>'
    host = SoupDocument(html)
    applier = RemediationApplier(host)
    node = (await _nodes(host, LINK_SELECTOR))[0]

    outcome = await applier.apply(node, Category.LINK, default_result(Category.LINK, Phase.GENERATE))

    link = host.soup.a
    assert outcome.success
    assert link.get_text() == "Pricing plans for teams"
    assert link["aria-label"] == "Pricing plans for teams"
    assert link["title"] == 'Improved from: "Learn more"'

    await applier.revert_all()
    assert str(host.soup) == _normalized(html)


@pytest.mark.asyncio
async def test_link_child_elements_survive_revert():
    html = '<a href="/cart" aria-label="here"><svg><path d="M0 0"/></svg></a>'
    host = SoupDocument(html)
    applier = RemediationApplier(host)
    node = (await _nodes(host, LINK_SELECTOR))[0]

    await applier.apply(node, Category.LINK, default_result(Category.LINK, Phase.GENERATE))

    link = host.soup.a
    assert link.get_text() == "Pricing plans for teams"
    assert link.svg is None
    assert "<svg>" in link[ORIGINAL_HTML_ATTR]

    await applier.revert_all()
    assert str(host.soup) == _normalized(html)
    assert host.soup.a.svg.path is not None


@pytest.mark.asyncio
async def test_existing_link_title_is_kept():
    host = SoupDocument('<a href="/docs" title="Opens docs">here</a>')
    applier = RemediationApplier(host)
    node = (await _nodes(host, LINK_SELECTOR))[0]

    outcome = await applier.apply(node, Category.LINK, default_result(Category.LINK, Phase.GENERATE))

    assert host.soup.a["title"] == "Opens docs"
    assert "title" not in outcome.applied_fields


@pytest.mark.asyncio
async def test_detached_node_yields_apply_failure():
    host = SoupDocument('<div><img src="gone.png"></div>')
    applier = RemediationApplier(host)
    node = (await _nodes(host, IMAGE_SELECTOR))[0]
    host.soup.img.extract()

    outcome = await applier.apply(node, Category.IMAGE, default_result(Category.IMAGE, Phase.GENERATE))

    assert not outcome.success
    assert outcome.error_kind == "apply"


@pytest.mark.asyncio
async def test_mismatched_result_type_is_rejected():
    host = SoupDocument('<a href="/x">here</a>')
    applier = RemediationApplier(host)
    node = (await _nodes(host, LINK_SELECTOR))[0]

    outcome = await applier.apply(node, Category.LINK, default_result(Category.IMAGE, Phase.GENERATE))

    assert not outcome.success
    assert outcome.error_kind == "apply"
