"""High-level orchestration for remediating pages and writing the results."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urlparse

from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser import open_document
from .config import RemediationConfig
from .context import page_metadata
from .controller import RemediationController
from .dom import DocumentHost, SoupDocument
from .feedback import OutlineMarker, ReportCollector, log_event
from .inference import InferenceClient
from .models import PageMetadata
from .pipeline import RemediationPipeline, RunReport
from .report import compose_report
from .utils import slugify

logger = logging.getLogger("a11y_remedy")


@dataclass
class RemediationResult:
    """Outputs and timing for one remediated document."""

    source: str
    output_dir: Path
    markdown: str
    reports: List[RunReport] = field(default_factory=list)
    total_seconds: float = 0.0

    @property
    def failures(self) -> int:
        return sum(1 for report in self.reports for outcome in report.outcomes if not outcome.success)


def page_slug(source_url: str, title: Optional[str] = None) -> str:
    """Name of the remediated page: its URL path, or its file name for local sources."""
    parsed = urlparse(source_url)
    path = unquote(parsed.path).strip("/")
    if parsed.scheme == "file":
        path = path.rsplit("/", 1)[-1]
    last = path.rsplit("/", 1)[-1]
    if "." in last:
        path = path[: len(path) - len(last)] + last.rsplit(".", 1)[0]
    if path in ("", "index"):
        return slugify(title or "", fallback="index")[:80]
    return slugify(path, fallback="index")[:80]


def page_output_dir(config: RemediationConfig, metadata: PageMetadata) -> Path:
    """Directory for one remediated page: ``<output_root>/<host or "local">/<page>``."""
    host = slugify(urlparse(metadata.source_url).netloc, fallback="local")
    output_dir = config.output_root / host / page_slug(metadata.source_url, metadata.title)
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


async def remediate_host(
    host: DocumentHost,
    config: RemediationConfig,
    source: str,
    client: Optional[InferenceClient] = None,
) -> RemediationResult:
    """Run every configured category against a host and save page and report."""
    start = time.perf_counter()
    collector = ReportCollector()
    pipeline = RemediationPipeline(
        host,
        config,
        client=client,
        listeners=[log_event, OutlineMarker(host), collector],
    )
    controller = RemediationController(pipeline)
    await controller.set_enabled(True)
    reports = await controller.wait()
    await host.clear_marks()
    for category, outcomes in collector.outcomes.items():
        failed = sum(1 for outcome in outcomes if not outcome.success)
        skipped = sum(1 for outcome in outcomes if outcome.skipped)
        logger.info(
            "%s: %d node(s) processed, %d skipped, %d failed",
            category.value,
            len(outcomes),
            skipped,
            failed,
        )

    html = await host.content()
    metadata = page_metadata(BeautifulSoup(html, "html.parser"), source)
    markdown = compose_report(metadata, reports)

    output_dir = page_output_dir(config, metadata)
    (output_dir / "index.html").write_text(html, encoding="utf-8")
    report_path = output_dir / "report.md"
    report_path.write_text(markdown, encoding="utf-8")
    logger.info("Saved remediated page and report to %s", output_dir)

    return RemediationResult(
        source=source,
        output_dir=output_dir,
        markdown=markdown,
        reports=reports,
        total_seconds=time.perf_counter() - start,
    )


async def remediate_url(url: str, config: RemediationConfig) -> Optional[RemediationResult]:
    """Render a URL with Playwright and remediate the live page."""
    try:
        async with open_document(url, config) as host:
            return await remediate_host(host, config, host.base_url or url)
    except PlaywrightTimeoutError as exc:
        logger.error("Timeout while loading %s: %s", url, exc)
        return None
    except Exception:  # pylint: disable=broad-except
        logger.exception("Unexpected error remediating %s", url)
        return None


async def remediate_file(path: Path, config: RemediationConfig) -> Optional[RemediationResult]:
    """Remediate a static HTML file; captures degrade to placeholders."""
    try:
        html = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.error("Cannot read %s: %s", path, exc)
        return None
    host = SoupDocument(html, base_url=path.resolve().as_uri())
    return await remediate_host(host, config, path.resolve().as_uri())


async def run_remediation(urls: List[str], config: RemediationConfig) -> List[RemediationResult]:
    """Remediate each URL sequentially."""
    results: List[RemediationResult] = []
    for url in urls:
        result = await remediate_url(url, config)
        if result:
            results.append(result)
    return results
