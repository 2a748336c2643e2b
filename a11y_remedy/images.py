"""Image fetching, validation and raster drawing utilities."""

from __future__ import annotations

import base64
import io
import logging
from typing import Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlparse

import requests
from filetype import guess
from PIL import Image, ImageDraw, ImageFont

logger = logging.getLogger("a11y_remedy")

MAX_IMAGE_BYTES = 10 * 1024 * 1024
MIN_IMAGE_BYTES = 64
RASTER_TYPES = {"png", "jpeg", "gif", "webp", "bmp", "tiff"}

MAX_CANVAS = (800, 600)
ISOLATED_QUALITY = 80
CONTEXT_QUALITY = 60
PLACEHOLDER_SIZE = (400, 300)

Color = Tuple[int, int, int]


def raster_type(data: bytes, content_type: Optional[str] = None) -> Optional[str]:
    """Raster subtype of a fetched image body that Pillow can decode for a capture.

    The file signature wins over the ``Content-Type`` header. SVG and anything
    outside ``RASTER_TYPES`` yield None so the caller falls back to a placeholder.
    """
    kind = guess(data)
    if kind is not None:
        subtype = kind.mime.split("/")[-1].lower()
    elif content_type and content_type.lower().startswith("image/"):
        subtype = content_type.split(";")[0].split("/")[-1].strip().lower()
    else:
        return None
    subtype = "jpeg" if subtype == "jpg" else subtype
    return subtype if subtype in RASTER_TYPES else None


def is_svg_source(src: Optional[str], content_type: Optional[str] = None) -> bool:
    if content_type and "svg" in content_type.lower():
        return True
    if not src:
        return False
    lowered = src.lower()
    if lowered.startswith("data:image/svg"):
        return True
    return urlparse(lowered).path.endswith(".svg")


def file_name_from_src(src: Optional[str], limit: int = 25) -> str:
    """Last path segment of an image source, for placeholder captions."""
    if not src or src.startswith("data:"):
        return ""
    path = urlparse(src).path or src
    name = unquote(path.rstrip("/").split("/")[-1])
    return name[:limit]


def decode_data_url(src: str) -> Optional[Tuple[str, bytes]]:
    """Split a ``data:`` URL into its media type and payload."""
    if not src.startswith("data:") or "," not in src:
        return None
    header, payload = src[5:].split(",", 1)
    media_type = header.split(";")[0] or "text/plain"
    try:
        if header.endswith(";base64"):
            return media_type, base64.b64decode(payload)
        return media_type, unquote(payload).encode("utf-8")
    except (ValueError, TypeError) as exc:
        logger.debug("Undecodable data URL: %s", exc)
        return None


def fetch_bytes(
    session: requests.Session, url: str, timeout: float
) -> Optional[Tuple[str, bytes]]:
    """GET a resource and return its content type and body within size limits."""
    try:
        resp = session.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch %s: %s", url, exc)
        return None
    data = resp.content
    if len(data) > MAX_IMAGE_BYTES:
        logger.warning("Skipping %s: larger than %s bytes", url, MAX_IMAGE_BYTES)
        return None
    return resp.headers.get("Content-Type", ""), data


def fetch_image(
    session: requests.Session, url: str, timeout: float
) -> Optional[Image.Image]:
    """Download a raster image and decode it, or return None if it is unusable."""
    fetched = fetch_bytes(session, url, timeout)
    if fetched is None:
        return None
    content_type, data = fetched
    if len(data) < MIN_IMAGE_BYTES:
        logger.warning("Skipping %s: response too small", url)
        return None
    if raster_type(data, content_type) is None:
        logger.warning(
            "Skipping %s: unsupported image type (Content-Type=%s)", url, content_type
        )
        return None
    return decode_image(data)


def decode_image(data: bytes) -> Optional[Image.Image]:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, ValueError) as exc:
        logger.warning("Could not decode image data: %s", exc)
        return None
    return flatten(image)


def flatten(image: Image.Image, background: Color = (255, 255, 255)) -> Image.Image:
    """Convert to RGB over a solid background so JPEG encoding never fails."""
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, background)
        canvas.paste(rgba, mask=rgba.split()[-1])
        return canvas
    return image.convert("RGB")


def fit_within(image: Image.Image, max_size: Tuple[int, int] = MAX_CANVAS) -> Image.Image:
    """Downscale preserving aspect ratio; never upscales."""
    width, height = image.size
    max_width, max_height = max_size
    if width <= max_width and height <= max_height:
        return image
    ratio = min(max_width / width, max_height / height)
    target = (max(1, int(width * ratio)), max(1, int(height * ratio)))
    return image.resize(target, Image.Resampling.LANCZOS)


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    fit_within(flatten(image)).save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def parse_color(value: Optional[str], default: Color = (255, 255, 255)) -> Color:
    """Parse ``#rrggbb``, ``#rgb`` or ``rgb()/rgba()`` strings; transparent maps to default."""
    if not value:
        return default
    value = value.strip().lower()
    if value.startswith("#"):
        digits = value[1:]
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        if len(digits) == 6:
            try:
                return tuple(int(digits[i:i + 2], 16) for i in (0, 2, 4))  # type: ignore[return-value]
            except ValueError:
                return default
        return default
    if value.startswith("rgb"):
        inner = value[value.find("(") + 1:value.rfind(")")]
        parts = [part.strip() for part in inner.replace("/", ",").split(",") if part.strip()]
        try:
            channels = [int(float(part)) for part in parts[:3]]
            alpha = float(parts[3]) if len(parts) > 3 else 1.0
        except ValueError:
            return default
        if len(channels) != 3 or alpha == 0:
            return default
        return channels[0], channels[1], channels[2]
    return default


def _font() -> ImageFont.ImageFont:
    return ImageFont.load_default()


def _centered(draw: ImageDraw.ImageDraw, width: int, y: int, text: str, fill: str) -> None:
    left, _, right, _ = draw.textbbox((0, 0), text, font=_font())
    draw.text(((width - (right - left)) / 2, y), text, fill=fill, font=_font())


def draw_image_placeholder(src: Optional[str], alt: Optional[str]) -> Image.Image:
    """Deterministic stand-in for media that could not be rendered."""
    width, height = PLACEHOLDER_SIZE
    image = Image.new("RGB", PLACEHOLDER_SIZE, "#f8f9fa")
    draw = ImageDraw.Draw(image)
    draw.rectangle((2, 2, width - 3, height - 3), outline="#dee2e6", width=2)
    _centered(draw, width, 130, "Image", "#6c757d")
    name = file_name_from_src(src)
    if name:
        _centered(draw, width, 158, name, "#6c757d")
    if alt:
        _centered(draw, width, 178, f'Alt: "{alt[:30]}"', "#6c757d")
    return image


def draw_svg_placeholder() -> Image.Image:
    width, height = PLACEHOLDER_SIZE
    image = Image.new("RGB", PLACEHOLDER_SIZE, "#f8f9fa")
    draw = ImageDraw.Draw(image)
    draw.rectangle((2, 2, width - 3, height - 3), outline="#dee2e6", width=2)
    _centered(draw, width, height // 2 - 6, "SVG Image", "#6c757d")
    return image


def draw_field_rendition(
    size: Tuple[int, int],
    input_type: str,
    placeholder: str = "",
    value: str = "",
    required: bool = False,
    padding: int = 10,
) -> Image.Image:
    """Synthetic drawing of a form control when no screenshot is available."""
    width, height = size
    image = Image.new("RGB", size, "#ffffff")
    draw = ImageDraw.Draw(image)
    draw.rectangle(
        (padding, padding, width - padding - 1, height - padding - 1),
        outline="#d1d5db",
        width=1,
    )
    draw.text((padding + 5, padding + 3), f"{input_type.upper()} INPUT", fill="#6b7280", font=_font())
    if value:
        draw.text((padding + 5, height // 2 - 4), value[:20], fill="#000000", font=_font())
    if placeholder:
        draw.text((padding + 5, height - padding - 14), placeholder[:25], fill="#9ca3af", font=_font())
    if required:
        draw.text((width - 20, padding + 3), "*", fill="#dc2626", font=_font())
    return image


def draw_link_rendition(
    size: Tuple[int, int], text: str, destination: str = "", padding: int = 10
) -> Image.Image:
    """Synthetic drawing of a link when no screenshot is available."""
    width, height = size
    image = Image.new("RGB", size, "#ffffff")
    draw = ImageDraw.Draw(image)
    label = text[:40] or "Link"
    draw.text((padding, padding), label, fill="#1d4ed8", font=_font())
    left, _, right, bottom = draw.textbbox((padding, padding), label, font=_font())
    draw.line((left, bottom + 1, right, bottom + 1), fill="#1d4ed8", width=1)
    if destination:
        draw.text((padding, height - padding - 12), destination[:40], fill="#6b7280", font=_font())
    return image


def draw_text_canvas(
    lines: Iterable[str],
    highlight: str,
    size: Tuple[int, int] = PLACEHOLDER_SIZE,
) -> Image.Image:
    """Fallback context canvas: a highlighted target box plus wrapped context text."""
    width, height = size
    image = Image.new("RGB", size, "#ffffff")
    draw = ImageDraw.Draw(image)
    draw.rectangle((150, 40, 250, 70), fill="#f3f4f6")
    draw.rectangle((148, 38, 252, 72), outline=highlight, width=2)
    y = 90
    for line in wrap_lines(lines, 60):
        if y > height - 16:
            break
        draw.text((12, y), line, fill="#374151", font=_font())
        y += 14
    return image


def wrap_lines(lines: Iterable[str], width: int) -> List[str]:
    wrapped: List[str] = []
    for line in lines:
        words = line.split()
        current = ""
        for word in words:
            candidate = f"{current} {word}".strip()
            if len(candidate) > width and current:
                wrapped.append(current)
                current = word
            else:
                current = candidate
        if current:
            wrapped.append(current)
    return wrapped


def annotate(
    image: Image.Image,
    annotations: Iterable[Tuple[float, float, str]],
    fill: str = "#6b7280",
    boxed: bool = False,
) -> None:
    """Draw short text labels at positions relative to the image origin.

    ``boxed`` puts each label on a white tag so it stays legible over a screenshot.
    """
    draw = ImageDraw.Draw(image)
    width, height = image.size
    for x, y, text in annotations:
        if not (0 <= x < width and 0 <= y < height and text):
            continue
        if boxed:
            left, top, right, bottom = draw.textbbox((x, y), text, font=_font())
            draw.rectangle((left - 2, top - 1, right + 2, bottom + 1), fill="#ffffff", outline=fill)
        draw.text((x, y), text, fill=fill, font=_font())


def outline(
    image: Image.Image,
    box: Tuple[float, float, float, float],
    color: str,
    width: int = 3,
) -> None:
    """Draw a highlight rectangle ``(x, y, w, h)`` grown by two pixels on each side."""
    x, y, w, h = box
    draw = ImageDraw.Draw(image)
    draw.rectangle((x - 2, y - 2, x + w + 2, y + h + 2), outline=color, width=width)
