"""Text layout and animation for quote frames.

Layout is computed once per request: the font size is searched downward
from ``max_font_size`` until the greedily wrapped quote fits the vertical
budget. Per frame, ``animation_state`` turns a progress value into opacity,
vertical offset and how many characters are visible.
"""

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from PIL import Image, ImageDraw, ImageFont

FONT_CANDIDATES = [
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
    "/System/Library/Fonts/Helvetica.ttc",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
]

_font_cache: dict[int, ImageFont.FreeTypeFont] = {}


def get_font(size: int) -> ImageFont.FreeTypeFont:
    """Load a bold sans font at ``size``, preferring system fonts."""
    if size in _font_cache:
        return _font_cache[size]

    font = None
    for font_path in FONT_CANDIDATES:
        if Path(font_path).exists():
            try:
                font = ImageFont.truetype(font_path, size)
                break
            except OSError:
                continue
    if font is None:
        font = ImageFont.load_default(size)
    _font_cache[size] = font
    return font


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> list[str]:
    """Greedy word wrap.

    Explicit newlines always break; other whitespace runs count as one
    space. A word joins the current line while the measured width of the
    joined line stays under ``max_width``; otherwise the line is closed and
    the word starts the next one. A single word wider than ``max_width`` is
    kept on its own line.
    """
    lines = []
    for paragraph in text.splitlines():
        words = paragraph.split()
        if not words:
            continue
        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if measure(candidate) < max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


def fit_font_size(
    text: str,
    max_width: float,
    max_height: float,
    *,
    font_loader: Callable[[int], ImageFont.FreeTypeFont] = get_font,
    max_size: int = 100,
    min_size: int = 20,
    step: int = 5,
    line_spacing: float = 1.4,
) -> int:
    """Largest font size whose wrapped text fits ``max_height``.

    Returns ``min_size`` when nothing fits.
    """
    size = max_size
    while size > min_size:
        font = font_loader(size)
        lines = wrap_text(text, max_width, font.getlength)
        if len(lines) * size * line_spacing <= max_height:
            return size
        size -= step
    return max(size, min_size)


@dataclass
class TextState:
    """How the quote should look at one instant."""

    opacity: float
    y_offset: float
    visible_chars: int
    author_opacity: float


def chars_shown(length: int, progress: float) -> int:
    """Typewriter reveal: full text is visible from progress 0.5 on."""
    return int(math.floor(length * min(1.0, progress * 2)))


def author_opacity(progress: float) -> float:
    """The author line fades in over the last 30% of the timeline."""
    if progress <= 0.7:
        return 0.0
    return min(1.0, (progress - 0.7) * 3.33)


def animation_state(
    animation: str,
    progress: float,
    length: int,
    slide_offset: float = 50.0,
) -> TextState:
    opacity = 1.0
    y_offset = 0.0
    visible = length

    if animation == "fade-in":
        opacity = min(1.0, progress * 3)
    elif animation == "slide-in":
        opacity = min(1.0, progress * 2)
        y_offset = (1 - progress) * slide_offset
    elif animation == "typewriter":
        visible = chars_shown(length, progress)

    return TextState(
        opacity=opacity,
        y_offset=y_offset,
        visible_chars=visible,
        author_opacity=author_opacity(progress),
    )


@dataclass
class TextLayout:
    """Pre-computed quote layout for one request."""

    font_size: int
    font: ImageFont.FreeTypeFont
    author_font: ImageFont.FreeTypeFont
    lines: list[str]
    line_height: float
    max_width: float
    start_y: float

    @property
    def total_height(self) -> float:
        return len(self.lines) * self.line_height


def compute_layout(
    text: str,
    width: int,
    height: int,
    text_config: dict | None = None,
    font_loader: Callable[[int], ImageFont.FreeTypeFont] = get_font,
) -> TextLayout:
    cfg = text_config or {}
    padding = cfg.get("padding", 80)
    spacing = cfg.get("line_spacing", 1.4)
    max_width = width - padding * 2

    font_size = fit_font_size(
        text,
        max_width,
        cfg.get("max_text_height", 200),
        font_loader=font_loader,
        max_size=cfg.get("max_font_size", 100),
        min_size=cfg.get("min_font_size", 20),
        step=cfg.get("font_step", 5),
        line_spacing=spacing,
    )
    font = font_loader(font_size)
    lines = wrap_text(text, max_width, font.getlength)
    line_height = font_size * spacing
    start_y = (height - len(lines) * line_height) / 2

    return TextLayout(
        font_size=font_size,
        font=font,
        author_font=font_loader(max(1, int(font_size * cfg.get("author_scale", 0.6)))),
        lines=lines,
        line_height=line_height,
        max_width=max_width,
        start_y=start_y,
    )


def draw_centered_lines(
    overlay: Image.Image,
    lines: list[str],
    font: ImageFont.FreeTypeFont,
    start_y: float,
    line_height: float,
    color: tuple[int, int, int],
    opacity: float,
    shadow_offset: tuple[int, int] = (2, 2),
    shadow_opacity: float = 0.8,
) -> None:
    """Draw lines centered horizontally on an RGBA overlay, with a drop shadow."""
    if opacity <= 0:
        return
    draw = ImageDraw.Draw(overlay)
    cx = overlay.width / 2
    alpha = int(255 * opacity)
    shadow_alpha = int(255 * opacity * shadow_opacity)
    dx, dy = shadow_offset

    for i, line in enumerate(lines):
        if not line:
            continue
        y = start_y + i * line_height
        draw.text((cx + dx, y + dy), line, fill=(0, 0, 0, shadow_alpha), font=font, anchor="mm")
        draw.text((cx, y), line, fill=(*color, alpha), font=font, anchor="mm")
