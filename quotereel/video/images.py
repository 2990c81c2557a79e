"""Background image sourcing for quotereel videos.

Two concerns live here:

    - The default image provider, which asks the Unsplash random-photo
      endpoint for a portrait image matching a theme's keywords.
    - Loading an image from a URL or local path into a Pillow image sized
      for the frame. Remote images are cached on disk by URL hash so
      repeated renders of the same theme do not re-download.

Unsplash API docs: https://unsplash.com/documentation#get-a-random-photo

Optional environment variable:
    UNSPLASH_ACCESS_KEY: without it the provider returns None and the
    renderer falls back to a gradient background.
"""

import hashlib
import io
import os
from pathlib import Path
from typing import Callable

import httpx
from dotenv import load_dotenv
from PIL import Image, UnidentifiedImageError
from rich.console import Console

from quotereel.config import get_theme, resolve_path
from quotereel.errors import RenderError

load_dotenv()
console = Console()

UNSPLASH_RANDOM_URL = "https://api.unsplash.com/photos/random"

# (theme, width, height) -> image URL or None
ImageProvider = Callable[[str, int, int], "str | None"]


def unsplash_image_url(
    theme: str,
    width: int,
    height: int,
    config: dict | None = None,
) -> str | None:
    """Fetch a random theme-matching image URL from Unsplash.

    Never raises: returns None when no key is configured or the request
    fails, so callers can fall back to a gradient.
    """
    access_key = os.getenv("UNSPLASH_ACCESS_KEY")
    if not access_key:
        return None

    query = get_theme(config or {}, theme).get("keywords", "inspiration")
    orientation = "squarish" if width == height else "portrait"
    try:
        response = httpx.get(
            UNSPLASH_RANDOM_URL,
            headers={"Authorization": f"Client-ID {access_key}"},
            params={"query": query, "w": width, "h": height, "orientation": orientation},
            timeout=15,
        )
        response.raise_for_status()
        return response.json().get("urls", {}).get("regular")
    except (httpx.HTTPError, ValueError) as e:
        console.print(f"[yellow]Unsplash lookup failed for '{theme}': {e}[/yellow]")
        return None


def make_unsplash_provider(config: dict) -> ImageProvider:
    """Bind config so the provider resolves theme keywords from it."""
    def provider(theme: str, width: int, height: int) -> str | None:
        return unsplash_image_url(theme, width, height, config=config)
    return provider


def _cache_path(url: str, cache_dir: Path) -> Path:
    """Deterministic cache path based on the SHA256 of the URL."""
    h = hashlib.sha256(url.encode("utf-8")).hexdigest()
    return cache_dir / f"{h}.img"


def _is_remote(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def fetch_image_bytes(source: str, cache_dir: Path | None = None) -> bytes:
    """Read image bytes from a URL (with disk cache) or a local path.

    Raises:
        RenderError: The source could not be read.
    """
    if not _is_remote(source):
        path = Path(source[len("file://"):] if source.startswith("file://") else source)
        try:
            return path.read_bytes()
        except OSError as e:
            raise RenderError(f"Could not read image {path}: {e}") from e

    cached = _cache_path(source, cache_dir) if cache_dir else None
    if cached is not None and cached.exists():
        return cached.read_bytes()

    try:
        response = httpx.get(source, timeout=30, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise RenderError(f"Could not download image {source}: {e}") from e

    data = response.content
    if cached is not None:
        try:
            cached.parent.mkdir(parents=True, exist_ok=True)
            cached.write_bytes(data)
        except OSError as e:
            console.print(f"[yellow]Could not cache image {source}: {e}[/yellow]")
    return data


def cover_resize(img: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to cover the target area, then center-crop the excess."""
    src_w, src_h = img.size
    scale = max(width / src_w, height / src_h)
    new_w = max(width, round(src_w * scale))
    new_h = max(height, round(src_h * scale))
    img = img.resize((new_w, new_h), Image.LANCZOS)
    x_off = (new_w - width) // 2
    y_off = (new_h - height) // 2
    return img.crop((x_off, y_off, x_off + width, y_off + height))


def load_image(
    source: str,
    width: int,
    height: int,
    cache_dir: Path | None = None,
) -> Image.Image:
    """Load an image source as an RGB frame-sized Pillow image.

    Raises:
        RenderError: The source could not be fetched or decoded.
    """
    data = fetch_image_bytes(source, cache_dir)
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise RenderError(f"Could not decode image {source}: {e}") from e
    return cover_resize(img.convert("RGB"), width, height)


def load_images(
    sources: list[str],
    width: int,
    height: int,
    cache_dir: Path | None = None,
) -> list[Image.Image]:
    """Load every source that resolves; failures are logged and skipped."""
    images = []
    for source in sources:
        try:
            images.append(load_image(source, width, height, cache_dir))
        except RenderError as e:
            console.print(f"[yellow]Skipping background image: {e}[/yellow]")
    return images


def default_cache_dir(config: dict) -> Path:
    return resolve_path(config.get("video", {}).get("image_cache_dir", "data/image_cache"))
