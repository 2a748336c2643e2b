"""Command-line entry point for the accessibility remediation pipeline."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from .config import DEFAULT_ENDPOINT, DEFAULT_MODEL_ID, RemediationConfig
from .models import Category
from .runner import RemediationResult, remediate_file, run_remediation

logger = logging.getLogger("a11y_remedy.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("run", *argv)


def _parse_categories(value: str) -> Tuple[Category, ...]:
    names = [name.strip() for name in value.split(",") if name.strip()]
    try:
        return tuple(Category(name) for name in names)
    except ValueError as exc:
        choices = ", ".join(category.value for category in Category)
        raise argparse.ArgumentTypeError(f"unknown category in {value!r} (choose from {choices})") from exc


def _parse_phrases(value: str) -> Tuple[str, ...]:
    return tuple(phrase.strip().lower() for phrase in value.split(",") if phrase.strip())


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        default="output",
        type=Path,
        help="Directory where remediated HTML and reports should be written",
    )
    parser.add_argument(
        "--endpoint",
        default=DEFAULT_ENDPOINT,
        help="OpenAI-compatible chat completions endpoint of the local model",
    )
    parser.add_argument(
        "--model",
        default=DEFAULT_MODEL_ID,
        help="Model identifier sent with every request",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=0.2,
        help="Sampling temperature for the model",
    )
    parser.add_argument(
        "--categories",
        type=_parse_categories,
        default=None,
        help="Comma-separated categories to process (image, form_field, link)",
    )
    parser.add_argument(
        "--max-concurrency",
        type=int,
        default=4,
        help="Nodes processed at once per phase; 0 removes the limit",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=60.0,
        help="Seconds to wait for one inference response",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=2,
        help="Retries for network errors and transient HTTP statuses",
    )
    parser.add_argument(
        "--capture-timeout",
        type=float,
        default=10.0,
        help="Seconds allowed for capturing one node before placeholders are used",
    )
    parser.add_argument(
        "--vague-phrases",
        type=_parse_phrases,
        default=None,
        help="Comma-separated phrases that replace the built-in vague link lexicon",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("urls", nargs="+", help="One or more URLs to remediate")
    parser.add_argument(
        "--wait",
        type=float,
        default=1.0,
        help="Seconds to wait after network idle before scanning the page",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Navigation timeout in seconds",
    )
    _add_common_arguments(parser)


def _add_file_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="HTML files to remediate without a browser",
    )
    _add_common_arguments(parser)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Find undescribed images, unlabeled form fields and vague links, "
            "and fix them with a local multimodal model."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", help="Render web pages with Playwright and remediate them"
    )
    _add_run_arguments(run_parser)

    file_parser = subparsers.add_parser(
        "file", help="Remediate static HTML files (captures use placeholders)"
    )
    _add_file_arguments(file_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RemediationConfig:
    """Map parsed flags onto a ``RemediationConfig``."""
    config = RemediationConfig(
        output_root=Path(args.output).resolve(),
        endpoint=args.endpoint,
        model_id=args.model,
        temperature=args.temperature,
        request_timeout=args.request_timeout,
        max_retries=args.retries,
        max_concurrency=args.max_concurrency,
        capture_timeout=args.capture_timeout,
    )
    if args.categories:
        config = replace(config, categories=args.categories)
    if args.vague_phrases:
        config = replace(config, vague_link_phrases=args.vague_phrases)
    if args.command == "run":
        config = replace(config, wait_after_load=args.wait, navigation_timeout=args.timeout)
    return config


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


async def _remediate_files(paths: List[Path], config: RemediationConfig) -> List[RemediationResult]:
    results: List[RemediationResult] = []
    for path in paths:
        result = await remediate_file(path, config)
        if result:
            results.append(result)
    return results


def _summarize(results: List[RemediationResult], total_inputs: int, elapsed: float, verbose: bool) -> None:
    successes = len(results)
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed)",
        elapsed,
        successes,
        total_inputs,
        total_inputs - successes,
    )
    if verbose:
        for result in results:
            logger.debug(
                "Remediated %s -> %s (%.2fs, %d node failure(s))",
                result.source,
                result.output_dir,
                result.total_seconds,
                result.failures,
            )


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    config = build_config(args)

    overall_start = time.perf_counter()
    if args.command == "run":
        results = asyncio.run(run_remediation(args.urls, config))
        total_inputs = len(args.urls)
    else:
        results = asyncio.run(_remediate_files(args.paths, config))
        total_inputs = len(args.paths)
    _summarize(results, total_inputs, time.perf_counter() - overall_start, args.verbose)

    if len(results) < total_inputs:
        sys.exit(1)


if __name__ == "__main__":
    main()
