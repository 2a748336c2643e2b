"""MCP server exposing the remediation pipeline as tools."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .config import RemediationConfig
from .dom import SoupDocument
from .runner import remediate_host, remediate_url

logger = logging.getLogger("a11y_remedy.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="a11y-remedy")


@mcp.tool()
async def remediate(
    url: str,
) -> str:
    """Render a web page with Playwright, fix accessibility issues and return the report."""

    with tempfile.TemporaryDirectory(prefix="a11y-remedy-") as tmp_dir:
        config = RemediationConfig(output_root=Path(tmp_dir))
        result = await remediate_url(url, config)
        if result is None:
            raise RuntimeError(f"Failed to remediate {url}")
        markdown = result.markdown
    return markdown


@mcp.tool()
async def remediate_html(
    html: str,
    base_url: str = "",
) -> str:
    """Remediate raw HTML markup and return the fixed markup followed by the report."""

    with tempfile.TemporaryDirectory(prefix="a11y-remedy-") as tmp_dir:
        config = RemediationConfig(output_root=Path(tmp_dir))
        host = SoupDocument(html, base_url=base_url)
        result = await remediate_host(host, config, base_url or "about:blank")
        fixed = await host.content()
    return f"```html\n{fixed}\n```\n\n{result.markdown}"


@mcp.tool()
async def remediate_file(
    path: str,
) -> str:
    """Remediate a local HTML file and return the report."""

    source = Path(path).expanduser()
    if not source.exists():
        raise FileNotFoundError(f"HTML file does not exist: {source}")
    html = source.read_text(encoding="utf-8", errors="replace")
    with tempfile.TemporaryDirectory(prefix="a11y-remedy-") as tmp_dir:
        config = RemediationConfig(output_root=Path(tmp_dir))
        host = SoupDocument(html, base_url=source.resolve().as_uri())
        result = await remediate_host(host, config, source.resolve().as_uri())
    return result.markdown


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
