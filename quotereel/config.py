"""Configuration loading for quotereel.

Settings live in ``config.yaml`` at the project root (override the location
with ``QUOTEREEL_CONFIG``). Secrets and machine paths come from ``.env``.
Every consumer reads config through ``dict.get`` with a default, so a
missing or partial file still produces a working setup.
"""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from rich.console import Console

load_dotenv()
console = Console()

PROJECT_ROOT = Path(__file__).resolve().parents[1]
CONFIG_PATH = PROJECT_ROOT / "config.yaml"

# Used when neither the requested theme nor ``default_theme`` is configured.
FALLBACK_THEME = {
    "background": "#1a1a2e",
    "text": "#ffffff",
    "accent": "#ff6b6b",
    "keywords": "inspiration",
    "mood": "inspirational",
}


def load_config(config_path: Path | None = None) -> dict:
    """Load the whole config file. Returns {} if it is missing or unreadable."""
    if config_path is None:
        config_path = Path(os.getenv("QUOTEREEL_CONFIG", CONFIG_PATH))
    try:
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        console.print(f"[yellow]Config not found at {config_path}, using defaults.[/yellow]")
        return {}
    except yaml.YAMLError as e:
        console.print(f"[yellow]Config at {config_path} is invalid ({e}), using defaults.[/yellow]")
        return {}


def resolve_path(value: str | Path) -> Path:
    """Resolve a configured directory relative to the project root."""
    path = Path(value)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


def hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Convert a hex color string like '#1a1a2e' to an (R, G, B) tuple."""
    hex_color = hex_color.lstrip("#")
    return tuple(int(hex_color[i : i + 2], 16) for i in (0, 2, 4))


def get_theme(config: dict, theme: str) -> dict:
    """Return the palette/keywords/mood entry for a theme.

    Unknown themes use ``default_theme``; missing keys are filled from
    FALLBACK_THEME.
    """
    themes = config.get("themes", {}) or {}
    entry = themes.get(theme)
    if entry is None:
        entry = themes.get(config.get("default_theme", "motivation"), {})
    return {**FALLBACK_THEME, **(entry or {})}


def get_resolution(config: dict, video_format: str) -> tuple[int, int]:
    """Pixel size (width, height) for an output format."""
    formats = config.get("video", {}).get("formats", {})
    defaults = {
        "instagram": (1080, 1920),
        "tiktok": (1080, 1920),
        "square": (1080, 1080),
    }
    size = formats.get(video_format) or defaults.get(video_format, (1080, 1920))
    return int(size[0]), int(size[1])
