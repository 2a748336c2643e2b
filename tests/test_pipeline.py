"""Tests for the two-phase pipeline: fan-out, settle, re-classification and cancellation."""

import pytest

from a11y_remedy.dom import SoupDocument
from a11y_remedy.errors import InferenceError, InferenceFailure
from a11y_remedy.feedback import EventKind, NodeEvent, OutlineMarker
from a11y_remedy.models import Category, Classification, Phase, RemediationOutcome
from a11y_remedy.pipeline import PipelineState, RemediationPipeline

from conftest import SAMPLE_PAGE, ScriptedClient, default_result, png_data_url


def _pipeline(host, config, client, events=None):
    listeners = [events.append] if events is not None else []
    listeners.append(OutlineMarker(host))
    return RemediationPipeline(host, config, client=client, listeners=listeners)


@pytest.mark.asyncio
async def test_generated_images_are_analyzed_in_the_same_run(config):
    host = SoupDocument(SAMPLE_PAGE)
    client = ScriptedClient()
    pipeline = _pipeline(host, config, client)

    report = await pipeline.run(Category.IMAGE)

    assert report.generation.classified[Classification.NEEDS_GENERATION] == 1
    assert report.generation.classified[Classification.NEEDS_ANALYSIS] == 1
    assert len(report.generation.succeeded) == 1
    # The freshly described image joins the one that already had alt text.
    assert report.analysis.classified[Classification.NEEDS_ANALYSIS] == 2
    assert len(report.analysis.outcomes) == 2
    assert client.count(Category.IMAGE, Phase.GENERATE) == 1
    assert client.count(Category.IMAGE, Phase.ANALYZE) == 2
    assert host.soup.find("img", src="bike.jpg")["alt"] == "A red commuter bicycle"
    assert pipeline.states[Category.IMAGE] is PipelineState.IDLE
    assert not report.cancelled


@pytest.mark.asyncio
async def test_vague_link_is_rewritten_then_analyzed(config):
    host = SoupDocument(SAMPLE_PAGE, base_url="https://shop.example/")
    client = ScriptedClient()
    pipeline = _pipeline(host, config, client)

    report = await pipeline.run(Category.LINK)

    assert [o.applied_fields["text"] for o in report.generation.succeeded] == ["Pricing plans for teams"]
    assert report.analysis.classified[Classification.NEEDS_GENERATION] == 0
    assert len(report.analysis.outcomes) == 3
    link = host.soup.find("a", href="/pricing")
    assert link.get_text() == "Pricing plans for teams"
    subject = next(call[2] for call in client.calls if call[1] is Phase.GENERATE)
    assert subject["Link text"] == "Learn more"


@pytest.mark.asyncio
async def test_failed_form_generation_is_still_analyzed(config):
    def responder(category, phase, subject):
        if phase is Phase.GENERATE:
            return InferenceError(InferenceFailure.SCHEMA_VIOLATION, "missing label")
        return default_result(category, phase)

    host = SoupDocument(SAMPLE_PAGE)
    events = []
    pipeline = _pipeline(host, config, ScriptedClient(responder), events)

    report = await pipeline.run(Category.FORM_FIELD)

    failed = report.generation.failed
    assert len(failed) == 1
    assert failed[0].error_kind == "schema_violation"
    assert host.soup.find("label", attrs={"data-a11y-remedy": "label"}) is None
    # Unlabeled email field plus the labelled password field.
    assert len(report.analysis.outcomes) == 2
    kinds = [(e.phase, e.kind) for e in events if e.handle == failed[0].handle]
    assert kinds[:2] == [(Phase.GENERATE, EventKind.STARTED), (Phase.GENERATE, EventKind.FAILED)]
    assert events[1].error == "missing label"


@pytest.mark.asyncio
async def test_form_field_is_labelled(config):
    host = SoupDocument(SAMPLE_PAGE)
    pipeline = _pipeline(host, config, ScriptedClient())

    report = await pipeline.run(Category.FORM_FIELD)

    assert report.generation.succeeded[0].applied_fields == {"label": "Email address"}
    email = host.soup.find("input", type="email")
    label = host.soup.find("label", attrs={"for": email["id"]})
    assert label.get_text() == "Email address"
    assert report.analysis.classified[Classification.NEEDS_GENERATION] == 0


@pytest.mark.asyncio
async def test_tiny_images_are_decorative_without_inference(config):
    host = SoupDocument(f'<p>Rated 5 stars <img src="{png_data_url((16, 16))}"></p>')
    client = ScriptedClient()
    pipeline = _pipeline(host, config, client)

    report = await pipeline.run(Category.IMAGE)

    assert client.calls == []
    assert host.soup.img["alt"] == ""
    assert report.generation.succeeded[0].result.classification == "decorative"
    assert report.analysis.outcomes == []


@pytest.mark.asyncio
async def test_markers_follow_node_status(config):
    host = SoupDocument(SAMPLE_PAGE)
    pipeline = _pipeline(host, config, ScriptedClient())

    await pipeline.run(Category.IMAGE)

    assert sorted(host.marks.values()) == ["passed", "passed"]


@pytest.mark.asyncio
async def test_concurrency_is_bounded(config):
    config.max_concurrency = 2
    images = "".join(f'<img src="photo-{i}.jpg">' for i in range(6))
    client = ScriptedClient(delay=0.05)
    pipeline = _pipeline(SoupDocument(images), config, client)

    await pipeline.run(Category.IMAGE)

    assert client.max_active == 2
    assert client.count(Category.IMAGE, Phase.GENERATE) == 6


@pytest.mark.asyncio
async def test_unbounded_concurrency(config):
    config.max_concurrency = 0
    images = "".join(f'<img src="photo-{i}.jpg">' for i in range(4))
    client = ScriptedClient(delay=0.25)
    pipeline = _pipeline(SoupDocument(images), config, client)

    await pipeline.run(Category.IMAGE)

    assert client.max_active == 4


@pytest.mark.asyncio
async def test_cancelled_run_applies_nothing_and_stops(config):
    host = SoupDocument(SAMPLE_PAGE)
    events = []
    holder = {}

    def responder(category, phase, subject):
        holder["handle"].cancel()
        return default_result(category, phase)

    pipeline = _pipeline(host, config, ScriptedClient(responder), events)
    handle = pipeline.new_handle(Category.IMAGE)
    holder["handle"] = handle

    report = await pipeline.run(Category.IMAGE, handle)

    assert report.cancelled
    assert report.analysis is None
    assert "alt" not in host.soup.find("img", src="bike.jpg").attrs
    assert all(event.kind is EventKind.STARTED for event in events)
    assert pipeline.states[Category.IMAGE] is PipelineState.IDLE


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_the_run(config):
    def broken(event):
        raise RuntimeError("listener exploded")

    host = SoupDocument(SAMPLE_PAGE)
    pipeline = RemediationPipeline(host, config, client=ScriptedClient(), listeners=[broken])

    report = await pipeline.run(Category.LINK)

    assert len(report.generation.succeeded) == 1


def test_skipped_outcome_gets_its_own_marker_status():
    marker = OutlineMarker(SoupDocument("<input>"))
    outcome = RemediationOutcome(
        handle="1", category=Category.FORM_FIELD, phase=Phase.GENERATE, success=True, skipped=True
    )
    event = NodeEvent(
        kind=EventKind.SUCCEEDED,
        category=Category.FORM_FIELD,
        phase=Phase.GENERATE,
        handle="1",
        run_id=1,
        outcome=outcome,
    )
    assert marker.status_for(event) == "skipped"
