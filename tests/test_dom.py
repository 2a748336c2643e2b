"""Tests for stamped snapshots, stable handles and box geometry."""

import pytest

from a11y_remedy.dom import NODE_ATTR, Rect, SoupDocument, collect_nodes
from a11y_remedy.errors import ApplyError


@pytest.mark.asyncio
async def test_snapshot_stamps_copy_not_live_tree():
    host = SoupDocument('<p><img src="a.png"><img src="b.png"></p>')

    snapshot = await host.snapshot("img")
    nodes = collect_nodes(snapshot, "img")

    assert [node.handle for node in nodes] == ["1", "2"]
    assert NODE_ATTR not in str(host.soup)
    assert nodes[0].element["src"] == "a.png"
    nodes[0].element["alt"] = "changed"
    assert "alt" not in host.soup.img.attrs


@pytest.mark.asyncio
async def test_handles_are_stable_across_snapshots():
    host = SoupDocument('<a href="/a">one</a><img src="x.png"><a href="/b">two</a>')

    first = collect_nodes(await host.snapshot("a"), "a")
    images = collect_nodes(await host.snapshot("img"), "img")
    again = collect_nodes(await host.snapshot("a"), "a")

    assert [node.handle for node in first] == ["1", "2"]
    assert images[0].handle == "3"
    assert [node.handle for node in again] == ["1", "2"]


@pytest.mark.asyncio
async def test_insert_before_and_remove_element():
    host = SoupDocument('<form><input id="q"></form>')
    handle = collect_nodes(await host.snapshot("input"), "input")[0].handle

    await host.insert_before(handle, "label", {"for": "q"}, "Search")
    assert str(host.soup) == '<form><label for="q">Search</label><input id="q"/></form>'

    label_handle = collect_nodes(await host.snapshot("label"), "label")[0].handle
    await host.remove_element(label_handle)
    assert str(host.soup) == '<form><input id="q"/></form>'


@pytest.mark.asyncio
async def test_detached_element_raises_apply_error():
    host = SoupDocument('<div><img src="gone.png"></div>')
    handle = collect_nodes(await host.snapshot("img"), "img")[0].handle
    host.soup.img.extract()

    with pytest.raises(ApplyError):
        await host.set_attribute(handle, "alt", "x")
    assert collect_nodes(await host.snapshot("img"), "img") == []


def test_rect_clamp_and_crop():
    bounds = Rect(0, 0, 1000, 800)

    assert Rect(-50, 700, 200, 200).clamp(bounds) == Rect(0, 700, 150, 100)
    assert Rect(2000, 2000, 10, 10).clamp(bounds).is_empty
    assert Rect(-5, -5, 10, 10).clamp(None) == Rect(0, 0, 5, 5)

    cropped = bounds.crop_around(Rect(950, 10, 20, 20), 400, 300)
    assert cropped == Rect(600, 0, 400, 300)
    assert Rect(10, 10, 5, 5).intersects(Rect(12, 12, 5, 5))
    assert not Rect(0, 0, 5, 5).intersects(Rect(5, 0, 5, 5))


def test_rect_move_inside_keeps_size():
    bounds = Rect(0, 0, 1280, 800)

    assert Rect(-40, -10, 200, 50).move_inside(bounds) == Rect(0, 0, 200, 50)
    assert Rect(1200, 780, 200, 50).move_inside(bounds) == Rect(1080, 750, 200, 50)
    assert Rect(-3, 5, 20, 20).move_inside(None) == Rect(0, 5, 20, 20)
    assert Rect(0, 0, 2000, 50).move_inside(bounds) == Rect(0, 0, 1280, 50)


@pytest.mark.asyncio
async def test_inner_html_is_replaced_and_restored():
    host = SoupDocument('<a href="/cart"><svg><path d="M0 0"></path></svg> Cart</a>')
    handle = collect_nodes(await host.snapshot("a"), "a")[0].handle

    markup = await host.inner_html(handle)
    assert markup == '<svg><path d="M0 0"></path></svg> Cart'

    await host.set_text(handle, "Shopping cart")
    assert host.soup.a.svg is None

    await host.set_inner_html(handle, markup)
    assert str(host.soup) == '<a href="/cart"><svg><path d="M0 0"></path></svg> Cart</a>'
