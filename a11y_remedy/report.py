"""Markdown summary of what a remediation pass changed and how it was judged."""

from __future__ import annotations

import datetime as dt
from typing import Iterable, List

from .feedback import verdict
from .models import PageMetadata, RemediationOutcome
from .pipeline import PhaseReport, RunReport

CATEGORY_TITLES = {
    "image": "Images",
    "form_field": "Form fields",
    "link": "Links",
}


def _timestamp() -> str:
    return (
        dt.datetime.now(dt.timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def _fields(outcome: RemediationOutcome) -> str:
    if outcome.skipped:
        return "already named by the author, left unchanged"
    if not outcome.applied_fields:
        return "no change needed"
    return "; ".join(f'{name} = "{value}"' for name, value in outcome.applied_fields.items())


def _analysis_line(outcome: RemediationOutcome) -> str:
    result = outcome.result
    passed = verdict(outcome)
    status = "pass" if passed else "needs work"
    details: List[str] = []
    score = getattr(result, "accessibility_score", None)
    if score is not None:
        details.append(f"score {score:g}/10")
    for name in ("classification", "label_quality", "text_clarity"):
        value = getattr(result, name, None)
        if value:
            details.append(f"{name.replace('_', ' ')}: {value}")
    issues = getattr(result, "issues_found", None) or getattr(result, "alt_text_analysis", None) or []
    line = f"- node {outcome.handle}: **{status}**"
    if details:
        line += f" ({', '.join(details)})"
    for issue in issues[:3]:
        line += f"\n  - {issue}"
    return line


def _failure_line(outcome: RemediationOutcome) -> str:
    return f"- node {outcome.handle}: {outcome.error_kind or 'error'}: {outcome.error_detail or ''}".rstrip(": ")


def _phase_section(title: str, phase: PhaseReport, analysis: bool) -> List[str]:
    counts = ", ".join(f"{state.value} {count}" for state, count in phase.classified.items())
    lines = [f"### {title}", "", f"Classified: {counts}", ""]
    if not phase.outcomes:
        lines.append("Nothing to do.")
        lines.append("")
        return lines
    for outcome in phase.succeeded:
        if analysis:
            lines.append(_analysis_line(outcome))
        else:
            lines.append(f"- node {outcome.handle}: {_fields(outcome)}")
    if phase.failed:
        lines.append("")
        lines.append("Failures:")
        lines.extend(_failure_line(outcome) for outcome in phase.failed)
    lines.append("")
    return lines


def compose_report(metadata: PageMetadata, reports: Iterable[RunReport]) -> str:
    """Generate the final Markdown report including front matter."""
    front_matter_lines = ["---"]
    if metadata.title:
        front_matter_lines.append(f"title: {metadata.title}")
    front_matter_lines.append(f"source_url: {metadata.source_url}")
    front_matter_lines.append(f"retrieved_at: {_timestamp()}")
    if metadata.description:
        front_matter_lines.append(f"description: {metadata.description}")
    front_matter_lines.append("---\n")

    body: List[str] = [f"# Accessibility remediation: {metadata.title or metadata.source_url}", ""]
    for report in reports:
        body.append(f"## {CATEGORY_TITLES.get(report.category.value, report.category.value)}")
        body.append("")
        if report.cancelled:
            body.append("Run was cancelled before it finished.")
            body.append("")
        if report.generation is not None:
            body.extend(_phase_section("Generated fixes", report.generation, analysis=False))
        if report.analysis is not None:
            body.extend(_phase_section("Analysis", report.analysis, analysis=True))
    return "\n".join(front_matter_lines) + "\n".join(body).rstrip() + "\n"
