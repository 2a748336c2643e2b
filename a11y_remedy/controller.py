"""Enable/disable switch that starts runs and tears remediation back down."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Tuple

from .models import Category
from .pipeline import RemediationPipeline, RunHandle, RunReport

logger = logging.getLogger("a11y_remedy")


class RemediationController:
    """Owns the in-flight run per category; at most one run per category at a time."""

    def __init__(self, pipeline: RemediationPipeline) -> None:
        self.pipeline = pipeline
        self.enabled = False
        self._runs: Dict[Category, Tuple[RunHandle, asyncio.Task]] = {}

    def in_flight(self, category: Category) -> bool:
        run = self._runs.get(category)
        return run is not None and not run[1].done()

    async def set_enabled(self, enabled: bool) -> None:
        if enabled:
            self.enabled = True
            self._start_runs()
        else:
            self.enabled = False
            await self._teardown()

    def _start_runs(self) -> None:
        for category in self.pipeline.config.categories:
            if self.in_flight(category):
                logger.info("A %s run is already in flight; not starting another", category.value)
                continue
            handle = self.pipeline.new_handle(category)
            task = asyncio.create_task(self.pipeline.run(category, handle))
            self._runs[category] = (handle, task)

    async def wait(self) -> List[RunReport]:
        """Wait for every started run and return their reports."""
        tasks = [task for _, task in self._runs.values()]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        reports: List[RunReport] = []
        for result in results:
            if isinstance(result, RunReport):
                reports.append(result)
            elif isinstance(result, Exception):
                logger.error("Run ended with an unexpected error: %s", result)
        return reports

    async def _teardown(self) -> None:
        runs = list(self._runs.values())
        self._runs.clear()
        for handle, task in runs:
            handle.cancel()
            task.cancel()
        # Revert only once no task can write to the document any more.
        await asyncio.gather(*(task for _, task in runs), return_exceptions=True)
        reverted = await self.pipeline.applier.revert_all()
        await self.pipeline.host.clear_marks()
        logger.info("Remediation disabled; reverted %d node(s)", reverted)
