"""Two-phase generate-then-analyze orchestration for one category at a time."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import Counter
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .applier import RemediationApplier
from .capture import CaptureRenderer
from .categories import CategorySpec, spec_for
from .config import RemediationConfig
from .dom import DocumentHost, Node, collect_nodes
from .errors import InferenceError, RunCancelled
from .feedback import EventKind, Listener, NodeEvent, emit
from .inference import InferenceClient
from .models import Category, Classification, Phase, RemediationOutcome
from .schemas import AltTextResponse, StrictResult

logger = logging.getLogger("a11y_remedy")


class PipelineState(str, Enum):
    IDLE = "idle"
    GENERATION_FAN_OUT = "generation_fan_out"
    SETTLING = "settling"
    ANALYSIS_FAN_OUT = "analysis_fan_out"


class RunHandle:
    """Cancellation token shared by every task of one run."""

    def __init__(self, run_id: int, category: Category) -> None:
        self.run_id = run_id
        self.category = category
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def check(self) -> None:
        if self._cancelled:
            raise RunCancelled(f"run {self.run_id} for {self.category.value} was cancelled")


@dataclass
class PhaseReport:
    """Classification counts and per-node outcomes of one phase."""

    phase: Phase
    classified: Dict[Classification, int] = field(default_factory=dict)
    outcomes: List[RemediationOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[RemediationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.success]

    @property
    def failed(self) -> List[RemediationOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]


@dataclass
class RunReport:
    category: Category
    run_id: int
    generation: Optional[PhaseReport] = None
    analysis: Optional[PhaseReport] = None
    cancelled: bool = False

    @property
    def outcomes(self) -> List[RemediationOutcome]:
        phases = [self.generation, self.analysis]
        return [outcome for phase in phases if phase for outcome in phase.outcomes]


class RemediationPipeline:
    """Generic pipeline parameterized by the per-category capability set."""

    def __init__(
        self,
        host: DocumentHost,
        config: RemediationConfig,
        client: Optional[InferenceClient] = None,
        renderer: Optional[CaptureRenderer] = None,
        applier: Optional[RemediationApplier] = None,
        listeners: Optional[Iterable[Listener]] = None,
    ) -> None:
        self.host = host
        self.config = config
        self.client = client or InferenceClient(config)
        self.renderer = renderer or CaptureRenderer(host, config)
        self.applier = applier or RemediationApplier(host)
        self.listeners: List[Listener] = list(listeners or [])
        self.states: Dict[Category, PipelineState] = {
            category: PipelineState.IDLE for category in Category
        }
        self._run_ids = itertools.count(1)
        self._semaphore: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(config.max_concurrency) if config.max_concurrency > 0 else None
        )

    def new_handle(self, category: Category) -> RunHandle:
        return RunHandle(next(self._run_ids), category)

    def _enter(self, category: Category, state: PipelineState) -> None:
        logger.debug("%s: %s -> %s", category.value, self.states[category].value, state.value)
        self.states[category] = state

    async def run(self, category: Category, handle: Optional[RunHandle] = None) -> RunReport:
        """Generation fan-out, settle, then analysis fan-out over the re-classified nodes."""
        handle = handle or self.new_handle(category)
        report = RunReport(category=category, run_id=handle.run_id)
        try:
            self._enter(category, PipelineState.GENERATION_FAN_OUT)
            report.generation = await self._fan_out(category, Phase.GENERATE, handle)

            self._enter(category, PipelineState.SETTLING)
            await self._settle()
            handle.check()

            self._enter(category, PipelineState.ANALYSIS_FAN_OUT)
            report.analysis = await self._fan_out(category, Phase.ANALYZE, handle)
        except RunCancelled:
            report.cancelled = True
            logger.info("Run %d for %s cancelled", handle.run_id, category.value)
        finally:
            self._enter(category, PipelineState.IDLE)
        return report

    async def _settle(self) -> None:
        await self.host.flush()
        if self.config.settle_delay:
            await asyncio.sleep(self.config.settle_delay)

    def _classify(
        self, spec: CategorySpec, phase: Phase, nodes: List[Node]
    ) -> Tuple[PhaseReport, List[Node]]:
        """Classify from scratch and pick the nodes this phase works on."""
        report = PhaseReport(phase=phase)
        wanted = {Classification.NEEDS_GENERATION}
        if phase is Phase.ANALYZE:
            wanted = {Classification.NEEDS_ANALYSIS}
            if spec.analyze_unremediated:
                wanted.add(Classification.NEEDS_GENERATION)
        counts: Counter = Counter()
        eligible: List[Node] = []
        for node in nodes:
            classification = spec.classify(node, self.config)
            counts[classification] += 1
            if classification in wanted:
                eligible.append(node)
        report.classified = {state: counts[state] for state in Classification}
        return report, eligible

    async def _fan_out(self, category: Category, phase: Phase, handle: RunHandle) -> PhaseReport:
        spec = spec_for(category)
        snapshot = await self.host.snapshot(spec.selector)
        nodes = collect_nodes(snapshot, spec.selector)
        report, eligible = self._classify(spec, phase, nodes)
        logger.info(
            "%s %s: %d of %d node(s) eligible",
            category.value,
            phase.value,
            len(eligible),
            len(nodes),
        )
        handle.check()

        results = await asyncio.gather(
            *(self._process(node, spec, phase, handle) for node in eligible),
            return_exceptions=True,
        )
        handle.check()
        for result in results:
            if isinstance(result, RemediationOutcome):
                report.outcomes.append(result)
            elif isinstance(result, BaseException):
                raise result
        return report

    async def _process(
        self, node: Node, spec: CategorySpec, phase: Phase, handle: RunHandle
    ) -> RemediationOutcome:
        async with self._semaphore if self._semaphore else nullcontext():
            handle.check()
            await self._emit(EventKind.STARTED, spec.category, phase, node.handle, handle)
            try:
                outcome = await self._remediate(node, spec, phase, handle)
            except InferenceError as exc:
                outcome = RemediationOutcome(
                    handle=node.handle,
                    category=spec.category,
                    phase=phase,
                    success=False,
                    error_kind=exc.kind.value,
                    error_detail=exc.message,
                )
            except RunCancelled:
                raise
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Unexpected failure on %s %s", spec.category.value, node.handle)
                outcome = RemediationOutcome(
                    handle=node.handle,
                    category=spec.category,
                    phase=phase,
                    success=False,
                    error_kind="internal",
                    error_detail=str(exc),
                )
            handle.check()
            kind = EventKind.SUCCEEDED if outcome.success else EventKind.FAILED
            await self._emit(kind, spec.category, phase, node.handle, handle, outcome)
            return outcome

    async def _remediate(
        self, node: Node, spec: CategorySpec, phase: Phase, handle: RunHandle
    ) -> RemediationOutcome:
        rect = await self.host.bounding_box(node.handle)
        bounds = await self.host.page_bounds()
        context = spec.extract_context(
            node, self.config, rect=rect, bounds=bounds, base_url=self.host.base_url
        )
        bundle = await self.renderer.capture(node, spec.category, context)
        handle.check()

        result: StrictResult
        if phase is Phase.GENERATE and self._too_small(spec, bundle.natural_size):
            result = AltTextResponse(
                classification="decorative",
                alt_text="",
                reasoning=f"Image is smaller than {self.config.min_informative_image_side}px",
            )
        else:
            result = await self.client.infer(
                spec.category, phase, context, bundle, spec.describe(node)
            )
        handle.check()

        if phase is Phase.GENERATE:
            return await self.applier.apply(node, spec.category, result)
        return RemediationOutcome(
            handle=node.handle,
            category=spec.category,
            phase=phase,
            success=True,
            result=result,
        )

    def _too_small(self, spec: CategorySpec, natural_size) -> bool:
        if spec.category is not Category.IMAGE or not natural_size:
            return False
        return min(natural_size) < self.config.min_informative_image_side

    async def _emit(
        self,
        kind: EventKind,
        category: Category,
        phase: Phase,
        node_handle: str,
        handle: RunHandle,
        outcome: Optional[RemediationOutcome] = None,
    ) -> None:
        if handle.cancelled:
            return
        event = NodeEvent(
            kind=kind,
            category=category,
            phase=phase,
            handle=node_handle,
            run_id=handle.run_id,
            outcome=outcome,
            error=outcome.error_detail if outcome is not None else None,
        )
        await emit(self.listeners, event)
