"""Background strategies for quotereel frames.

A background is built once per request (palette lookup, image downloads,
gradient pixels) and then asked for one image per frame via
``draw(progress)``. Static backgrounds return a copy of a precomputed image;
slideshow-style backgrounds pick and crossfade preloaded images.

Fallbacks:
    image / slideshow -> gradient when no image resolves
    custom            -> flat black when supplied images fail to load,
                         gradient when none were supplied at all
"""

import math

import numpy as np
from PIL import Image
from rich.console import Console

from quotereel.config import hex_to_rgb
from quotereel.errors import RenderError
from quotereel.models import VideoOptions
from quotereel.video.images import ImageProvider, load_image, load_images

console = Console()

TRANSITION_START = 0.8


def render_gradient(
    width: int,
    height: int,
    top: tuple[int, int, int],
    bottom: tuple[int, int, int],
) -> Image.Image:
    """Vertical linear gradient from ``top`` to ``bottom``."""
    grad_t = np.linspace(0.0, 1.0, height, dtype=np.float32)[:, np.newaxis]
    top_arr = np.array(top, dtype=np.float32)
    bottom_arr = np.array(bottom, dtype=np.float32)
    row = top_arr * (1 - grad_t) + bottom_arr * grad_t  # (height, 3)
    pixels = np.broadcast_to(row[:, np.newaxis, :], (height, width, 3))
    return Image.fromarray(np.round(pixels).astype(np.uint8), "RGB")


def apply_overlay(img: Image.Image, opacity: float) -> Image.Image:
    """Darken an image with a flat black overlay at the given opacity."""
    if opacity <= 0:
        return img
    arr = np.asarray(img, dtype=np.float32)
    blended = arr * (1.0 - min(opacity, 1.0))
    return Image.fromarray(blended.astype(np.uint8), "RGB")


def slideshow_position(
    progress: float,
    count: int,
    transition_start: float = TRANSITION_START,
) -> tuple[int, int, float]:
    """Locate a progress value inside an N-image rotation.

    Returns (current_index, next_index, crossfade_alpha). The alpha is 0
    until the segment passes ``transition_start``, then ramps linearly to 1
    at the segment's end.
    """
    scaled = progress * count
    current = int(math.floor(scaled)) % count
    next_index = (current + 1) % count
    image_progress = scaled % 1
    alpha = 0.0
    if count > 1 and image_progress > transition_start:
        alpha = (image_progress - transition_start) / (1 - transition_start)
    return current, next_index, alpha


class Background:
    """Base class: one image per progress value."""

    label = "background"

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height

    def draw(self, progress: float) -> Image.Image:
        raise NotImplementedError


class StaticBackground(Background):
    """A precomputed image, identical for every frame."""

    def __init__(self, image: Image.Image, label: str):
        super().__init__(*image.size)
        self.image = image
        self.label = label

    def draw(self, progress: float) -> Image.Image:
        return self.image.copy()


class CrossfadeBackground(Background):
    """Rotates through images in equal segments, crossfading at each boundary."""

    def __init__(
        self,
        images: list[Image.Image],
        overlay_opacity: float,
        label: str,
        transition_start: float = TRANSITION_START,
    ):
        super().__init__(*images[0].size)
        self.images = images
        self.overlay_opacity = overlay_opacity
        self.transition_start = transition_start
        self.label = label

    def draw(self, progress: float) -> Image.Image:
        current, next_index, alpha = slideshow_position(
            progress, len(self.images), self.transition_start
        )
        img = self.images[current]
        if alpha > 0:
            img = Image.blend(img, self.images[next_index], alpha)
        return apply_overlay(img, self.overlay_opacity)


def gradient_background(width: int, height: int, palette: dict) -> StaticBackground:
    img = render_gradient(
        width, height, hex_to_rgb(palette["background"]), hex_to_rgb(palette["accent"])
    )
    return StaticBackground(img, "gradient")


def solid_background(width: int, height: int, color: str | tuple) -> StaticBackground:
    rgb = hex_to_rgb(color) if isinstance(color, str) else color
    label = "solid" if isinstance(color, str) else "black"
    return StaticBackground(Image.new("RGB", (width, height), rgb), label)


def build_background(
    options: VideoOptions,
    theme: str,
    palette: dict,
    width: int,
    height: int,
    *,
    image_provider: ImageProvider | None = None,
    cache_dir=None,
    slideshow_count: int = 3,
    transition_start: float = TRANSITION_START,
) -> Background:
    """Resolve the requested background type into a ready-to-draw strategy.

    Image loading happens here, once. Load failures never propagate: they
    are logged and replaced by the documented fallback.
    """
    kind = options.background
    overlay = options.image_overlay_opacity

    if kind == "solid":
        return solid_background(width, height, palette["background"])

    if kind == "image":
        url = image_provider(theme, width, height) if image_provider else None
        if url:
            try:
                img = load_image(url, width, height, cache_dir)
                return StaticBackground(apply_overlay(img, overlay), "image")
            except RenderError as e:
                console.print(f"[yellow]Background image failed ({e}), using gradient.[/yellow]")
        else:
            console.print("[yellow]No background image available, using gradient.[/yellow]")
        return gradient_background(width, height, palette)

    if kind == "slideshow":
        sources = list(options.background_images)
        if not sources and image_provider:
            for _ in range(slideshow_count):
                url = image_provider(theme, width, height)
                if url:
                    sources.append(url)
        images = load_images(sources, width, height, cache_dir)
        if images:
            console.print(f"[dim]Slideshow: {len(images)} images[/dim]")
            return CrossfadeBackground(images, overlay, "slideshow", transition_start)
        console.print("[yellow]No slideshow images resolved, using gradient.[/yellow]")
        return gradient_background(width, height, palette)

    if kind == "custom" and options.background_images:
        images = load_images(options.background_images, width, height, cache_dir)
        if images:
            return CrossfadeBackground(images, overlay, "custom", transition_start)
        console.print("[yellow]Custom images failed to load, using black background.[/yellow]")
        return solid_background(width, height, (0, 0, 0))

    return gradient_background(width, height, palette)
