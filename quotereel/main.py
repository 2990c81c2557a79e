#!/usr/bin/env python3
"""
quotereel: quote video generator

Usage:
    quotereel generate "Quote text" --author "Someone" --theme wisdom
    quotereel generate "Quote" --background slideshow --image a.jpg --image b.jpg
    quotereel generate "Quote" --music --mood calm --volume 0.3
    quotereel variations "Quote text" --theme love     # instagram/square/tiktok set
    quotereel music calm                               # prepare a track for a mood
    quotereel clean-cache                              # drop expired music files
"""

import asyncio
import json
from datetime import datetime
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from quotereel.config import PROJECT_ROOT, load_config
from quotereel.errors import VideoGenerationError
from quotereel.models import (
    ANIMATIONS,
    BACKGROUNDS,
    FORMATS,
    MOODS,
    QUALITIES,
    CitationData,
    GeneratedVideo,
    VideoOptions,
)

load_dotenv()

console = Console()
LOG_DIR = PROJECT_ROOT / "logs"


def _log_run(action: str, results: dict):
    """Append run results to the daily log."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / f"{datetime.now().strftime('%Y-%m-%d')}.log"
    entry = {
        "timestamp": datetime.now().isoformat(),
        "action": action,
        "results": results,
    }
    with open(log_file, "a") as f:
        f.write(json.dumps(entry) + "\n")


def _show_videos(videos: list[GeneratedVideo]):
    table = Table(title="Generated videos")
    table.add_column("File", style="cyan")
    table.add_column("Format")
    table.add_column("Resolution")
    table.add_column("Background")
    table.add_column("Music")
    table.add_column("Size", justify="right")
    for v in videos:
        m = v.metadata
        table.add_row(
            v.filename,
            m["format"],
            m["resolution"],
            m["background"],
            "yes" if m["has_music"] else "-",
            f"{m['size'] / (1024 * 1024):.1f} MB",
        )
    console.print(table)


def _citation_options(f):
    f = click.option("--hashtag", "hashtags", multiple=True, help="Hashtag (repeatable)")(f)
    f = click.option("--theme", default="motivation", show_default=True, help="Theme (palette, imagery, music)")(f)
    f = click.option("--author", default=None, help="Quote author")(f)
    f = click.argument("content")(f)
    return f


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Path to config.yaml")
@click.pass_context
def cli(ctx, config_path):
    """quotereel: short-form quote videos"""
    ctx.obj = load_config(config_path)


@cli.command()
@_citation_options
@click.option("--duration", type=int, default=None, help="Length in seconds (default: video.default_duration)")
@click.option("--format", "video_format", type=click.Choice(FORMATS), default="instagram", show_default=True)
@click.option("--animation", type=click.Choice(ANIMATIONS), default="fade-in", show_default=True)
@click.option("--background", type=click.Choice(BACKGROUNDS), default="gradient", show_default=True)
@click.option("--image", "images", multiple=True, help="Background image URL or path (repeatable)")
@click.option("--overlay", type=float, default=0.6, show_default=True, help="Dark overlay opacity on images")
@click.option("--transition", type=float, default=3.0, show_default=True, help="Image transition seconds")
@click.option("--music/--no-music", default=False, help="Mix background music")
@click.option("--mood", type=click.Choice(MOODS), default=None, help="Music mood (defaults to the theme's)")
@click.option("--volume", type=float, default=0.3, show_default=True, help="Music volume 0-1")
@click.option("--quality", type=click.Choice(QUALITIES), default="medium", show_default=True)
@click.pass_obj
def generate(config, content, author, theme, hashtags, duration, video_format, animation,
             background, images, overlay, transition, music, mood, volume, quality):
    """Generate one quote video"""
    from quotereel.config import get_theme
    from quotereel.video.generator import VideoGenerator

    citation = CitationData(content=content, author=author, theme=theme, hashtags=list(hashtags))
    if duration is None:
        duration = config.get("video", {}).get("default_duration", 30)
    options = VideoOptions(
        duration=duration,
        format=video_format,
        animation=animation,
        background=background,
        background_images=list(images),
        image_overlay_opacity=overlay,
        image_transition_duration=transition,
        include_music=music,
        music_mood=mood or get_theme(config, theme).get("mood", "inspirational"),
        music_volume=volume,
        quality=quality,
    )

    console.print(Panel.fit(
        f"[bold cyan]quotereel[/bold cyan]\n{content[:80]}",
        border_style="cyan",
    ))

    try:
        video = asyncio.run(VideoGenerator(config).generate_video(citation, options))
    except VideoGenerationError as e:
        console.print(f"[red]Video generation failed: {e}[/red]")
        _log_run("generate", {"status": "failed", "stage": e.stage, "error": str(e)})
        raise SystemExit(1)

    _show_videos([video])
    _log_run("generate", {"status": "ok", "path": str(video.path), **video.metadata})


@cli.command()
@_citation_options
@click.option("--duration", type=int, default=None, help="Length in seconds (default: video.default_duration)")
@click.option("--music/--no-music", default=False, help="Mix background music")
@click.pass_obj
def variations(config, content, author, theme, hashtags, duration, music):
    """Generate the default instagram / square / tiktok set"""
    from quotereel.config import get_theme
    from quotereel.video.generator import DEFAULT_VARIATIONS, VideoGenerator

    citation = CitationData(content=content, author=author, theme=theme, hashtags=list(hashtags))
    if duration is None:
        duration = config.get("video", {}).get("default_duration", 30)
    mood = get_theme(config, theme).get("mood", "inspirational")
    options_list = [
        VideoOptions(
            duration=duration,
            format=base.format,
            animation=base.animation,
            include_music=music,
            music_mood=mood,
        )
        for base in DEFAULT_VARIATIONS
    ]

    videos = asyncio.run(VideoGenerator(config).generate_variations(citation, options_list))
    if videos:
        _show_videos(videos)
    else:
        console.print("[red]No variations were generated.[/red]")
    _log_run("variations", {
        "generated": [str(v.path) for v in videos],
        "failed": len(options_list) - len(videos),
    })


@cli.command()
@click.argument("mood", type=click.Choice(MOODS))
@click.pass_obj
def music(config, mood):
    """Resolve (or synthesize) a background track for a mood"""
    from quotereel.video.music import MusicSelector

    path = MusicSelector(config).get_track(mood)
    if path is None:
        raise SystemExit(1)
    console.print(f"[green]Track ready:[/green] {path}")


@cli.command(name="clean-cache")
@click.option("--max-age-days", type=float, default=None, help="Override music cache max age")
@click.pass_obj
def clean_cache(config, max_age_days):
    """Remove expired cached music files"""
    from quotereel.video.music import MusicSelector

    removed = MusicSelector(config).clean_cache(max_age_days)
    console.print(f"[green]Removed {removed} cached music file(s).[/green]")


if __name__ == "__main__":
    cli()
