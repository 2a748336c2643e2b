"""Per-node lifecycle events and the listeners that consume them."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from .dom import DocumentHost
from .models import Category, Phase, RemediationOutcome

logger = logging.getLogger("a11y_remedy")


class EventKind(str, Enum):
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class NodeEvent:
    """A node entered or left one phase of a run."""

    kind: EventKind
    category: Category
    phase: Phase
    handle: str
    run_id: int
    outcome: Optional[RemediationOutcome] = None
    error: Optional[str] = None


Listener = Callable[[NodeEvent], Union[None, Awaitable[None]]]


def verdict(outcome: Optional[RemediationOutcome]) -> Optional[bool]:
    """Pass/fail judgement carried by an analysis result, if any."""
    if outcome is None or outcome.result is None:
        return None
    for name in ("is_sufficient", "is_accessible"):
        value = getattr(outcome.result, name, None)
        if isinstance(value, bool):
            return value
    return None


async def emit(listeners: Iterable[Listener], event: NodeEvent) -> None:
    for listener in listeners:
        try:
            result = listener(event)
            if inspect.isawaitable(result):
                await result
        except Exception:  # pylint: disable=broad-except
            logger.exception("Status listener %r failed on %s", listener, event.kind.value)


def log_event(event: NodeEvent) -> None:
    """Listener that writes every lifecycle event to the package logger."""
    label = f"[{event.category.value}/{event.phase.value}] node {event.handle}"
    if event.kind is EventKind.STARTED:
        logger.debug("%s started", label)
    elif event.kind is EventKind.SUCCEEDED:
        outcome = event.outcome
        fields = ", ".join(f"{k}={v!r}" for k, v in outcome.applied_fields.items()) if outcome else ""
        passed = verdict(outcome)
        if outcome is not None and outcome.skipped:
            logger.info("%s skipped: already named", label)
        elif passed is not None:
            logger.info("%s analysed: %s", label, "pass" if passed else "needs work")
        else:
            logger.info("%s remediated %s", label, fields or "(no change)")
    else:
        logger.warning("%s failed: %s", label, event.error)


class OutlineMarker:
    """Listener that mirrors node status onto host-side visual markers."""

    GENERATION_STATES = {
        EventKind.STARTED: "generating",
        EventKind.SUCCEEDED: "generated",
        EventKind.FAILED: "failed",
    }

    def __init__(self, host: DocumentHost) -> None:
        self.host = host

    def status_for(self, event: NodeEvent) -> str:
        if event.outcome is not None and event.outcome.skipped:
            return "skipped"
        if event.phase is Phase.GENERATE:
            return self.GENERATION_STATES[event.kind]
        if event.kind is EventKind.STARTED:
            return "analyzing"
        if event.kind is EventKind.FAILED:
            return "failed"
        return "needs-work" if verdict(event.outcome) is False else "passed"

    async def __call__(self, event: NodeEvent) -> None:
        await self.host.mark(event.handle, self.status_for(event))


class ReportCollector:
    """Listener that keeps finished outcomes, grouped by category, for reporting."""

    def __init__(self) -> None:
        self.outcomes: Dict[Category, List[RemediationOutcome]] = {}

    def __call__(self, event: NodeEvent) -> None:
        if event.kind is EventKind.STARTED or event.outcome is None:
            return
        self.outcomes.setdefault(event.category, []).append(event.outcome)

    def clear(self) -> None:
        self.outcomes.clear()
