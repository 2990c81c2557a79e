"""Quote video generation for quotereel.

Turns a citation into a vertical (9:16) or square short-form MP4:

    validate -> temp workspace -> render frames -> assemble
             -> optional music mix -> platform optimize
             -> copy to output dir -> clean up workspace

The workspace is removed whether the request succeeds or fails. Music and
background-image problems degrade gracefully (silent video, gradient
background); encoder failures at the assemble and optimize stages
propagate as ``EncodingError`` carrying the failing stage.

Blocking work (image and music downloads, layout, file copies) runs in
worker threads, so several requests can share one event loop.
"""

import asyncio
import re
import sys
import time
from dataclasses import replace
from pathlib import Path

from rich.console import Console

from quotereel.config import get_resolution, get_theme, load_config, resolve_path
from quotereel.errors import ResourceError
from quotereel.models import CitationData, GeneratedVideo, VideoOptions
from quotereel.video.backgrounds import build_background
from quotereel.video.encoder import Encoder, EncoderPipeline, FFmpegEncoder
from quotereel.video.frames import FrameRenderer, FrameSequenceGenerator
from quotereel.video.images import ImageProvider, default_cache_dir, make_unsplash_provider
from quotereel.video.music import MusicSelector
from quotereel.video.workspace import TempWorkspace

console = Console()

DEFAULT_VARIATIONS = [
    VideoOptions(format="instagram", animation="fade-in"),
    VideoOptions(format="square", animation="slide-in"),
    VideoOptions(format="tiktok", animation="typewriter"),
]


def safe_theme(theme: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", theme)


class VideoGenerator:
    """Coordinates rendering, encoding and file lifecycle for quote videos."""

    def __init__(
        self,
        config: dict | None = None,
        *,
        encoder: Encoder | None = None,
        music_selector: MusicSelector | None = None,
        image_provider: ImageProvider | None = None,
        output_dir: Path | None = None,
        temp_dir: Path | None = None,
        image_cache_dir: Path | None = None,
    ):
        self.config = config if config is not None else load_config()
        self.video_config = self.config.get("video", {}) or {}
        vc = self.video_config

        self.fps = vc.get("fps", 30)
        self.min_duration = vc.get("min_duration", 10)
        self.max_duration = vc.get("max_duration", 60)
        self.default_duration = vc.get("default_duration", 30)
        self.render_workers = vc.get("render_workers", 1)
        self.compress_level = vc.get("png_compress_level", 1)
        self.slideshow_count = (vc.get("slideshow", {}) or {}).get("image_count", 3)
        self.transition_start = (vc.get("slideshow", {}) or {}).get("transition_start", 0.8)

        self.output_dir = Path(output_dir) if output_dir else resolve_path(
            vc.get("output_dir", "public/videos/generated")
        )
        self.temp_dir = Path(temp_dir) if temp_dir else resolve_path(
            vc.get("temp_dir", "temp/videos")
        )
        self.image_cache_dir = Path(image_cache_dir) if image_cache_dir else default_cache_dir(self.config)

        self._encoder = encoder
        self.music_selector = music_selector or MusicSelector(self.config)
        self.image_provider = image_provider or make_unsplash_provider(self.config)

    @property
    def encoder(self) -> Encoder:
        # Resolved lazily so constructing a generator never requires ffmpeg.
        if self._encoder is None:
            self._encoder = FFmpegEncoder.from_config(self.video_config)
        return self._encoder

    def default_options(self) -> VideoOptions:
        return VideoOptions(duration=self.default_duration)

    def _build_renderer(
        self, citation: CitationData, options: VideoOptions
    ) -> FrameRenderer:
        width, height = get_resolution(self.config, options.format)
        palette = get_theme(self.config, citation.theme)
        background = build_background(
            options,
            citation.theme,
            palette,
            width,
            height,
            image_provider=self.image_provider,
            cache_dir=self.image_cache_dir,
            slideshow_count=self.slideshow_count,
            transition_start=self.transition_start,
        )
        return FrameRenderer(citation, options, background, palette, self.video_config)

    def _store(self, optimized: Path, theme: str) -> tuple[bytes, str, Path]:
        """Copy the optimized video to ``video-{theme}-{timestampMs}.mp4``.

        The name is claimed with an exclusive create; if it is taken the
        timestamp is bumped until a free one is found.
        """
        try:
            buffer = optimized.read_bytes()
            self.output_dir.mkdir(parents=True, exist_ok=True)
            timestamp = int(time.time() * 1000)
            while True:
                filename = f"video-{safe_theme(theme)}-{timestamp}.mp4"
                path = self.output_dir / filename
                try:
                    with open(path, "xb") as f:
                        f.write(buffer)
                    return buffer, filename, path
                except FileExistsError:
                    timestamp += 1
        except OSError as e:
            raise ResourceError(f"Could not store final video: {e}") from e

    async def generate_video(
        self,
        citation: CitationData,
        options: VideoOptions | None = None,
    ) -> GeneratedVideo:
        """Render, encode and store one quote video.

        Without ``options`` the defaults apply, with ``video.default_duration``
        as the length.

        Raises:
            InputValidationError: Bad citation or options; nothing was created.
            ResourceError: The workspace or output file could not be written.
            EncodingError: The assemble or optimize stage failed.
        """
        options = options or self.default_options()
        citation.validate()
        options.validate(self.min_duration, self.max_duration)

        console.print(
            f"[bold cyan]Generating video[/] [dim]{citation.content[:50]}"
            f"{'...' if len(citation.content) > 50 else ''}[/dim]"
        )
        started = time.monotonic()

        workspace = TempWorkspace(self.temp_dir).create()
        try:
            renderer = await asyncio.to_thread(self._build_renderer, citation, options)
            frames = FrameSequenceGenerator(
                renderer,
                workspace,
                fps=self.fps,
                workers=self.render_workers,
                compress_level=self.compress_level,
            )
            await frames.generate(options.duration)

            pipeline = EncoderPipeline(self.encoder, self.video_config)
            video_path = await pipeline.assemble(workspace, options)

            has_music = False
            if options.include_music:
                music_path = await asyncio.to_thread(
                    self.music_selector.get_track, options.music_mood
                )
                if music_path is not None:
                    mixed = await pipeline.mix_audio(
                        workspace, video_path, music_path, options.music_volume
                    )
                    has_music = mixed != video_path
                    video_path = mixed

            optimized = await pipeline.optimize(workspace, video_path, options.format)
            buffer, filename, final_path = await asyncio.to_thread(
                self._store, optimized, citation.theme
            )
        finally:
            await asyncio.to_thread(workspace.cleanup)

        width, height = renderer.width, renderer.height
        size = len(buffer)
        elapsed = time.monotonic() - started
        console.print(
            f"[bold green]Video exported:[/] {final_path} "
            f"({size / (1024 * 1024):.1f} MB, {elapsed:.1f}s)"
        )
        return GeneratedVideo(
            buffer=buffer,
            filename=filename,
            path=final_path,
            metadata={
                "duration": options.duration,
                "format": options.format,
                "resolution": f"{width}x{height}",
                "size": size,
                "theme": citation.theme,
                "animation": options.animation,
                "background": renderer.background.label,
                "has_music": has_music,
            },
        )

    async def generate_variations(
        self,
        citation: CitationData,
        options_list: list[VideoOptions] | None = None,
    ) -> list[GeneratedVideo]:
        """Generate one video per option set; failed variations are skipped."""
        variations = options_list or [
            replace(v, duration=self.default_duration) for v in DEFAULT_VARIATIONS
        ]
        results: list[GeneratedVideo] = []
        failed = 0

        for i, options in enumerate(variations, 1):
            try:
                console.print(
                    f"\n[bold]Variation {i}/{len(variations)}:[/bold] "
                    f"{options.format} / {options.animation} / {options.background}"
                )
                results.append(await self.generate_video(citation, options))
            except Exception as e:
                failed += 1
                console.print(f"[red]Variation {i} failed: {e}[/red]")

        status = "green" if not failed else "yellow"
        console.print(
            f"[bold {status}]Variations: {len(results)}/{len(variations)} generated"
            f"{f', {failed} failed' if failed else ''}[/]"
        )
        return results


if __name__ == "__main__":
    console.print("[bold]quotereel video generator - test render[/]\n")
    test_citation = CitationData(
        content="The only way to do great work is to love what you do.",
        author="Steve Jobs",
        theme="motivation",
        hashtags=["motivation", "work"],
    )
    test_options = VideoOptions(duration=10, format="square", animation="typewriter")
    if len(sys.argv) > 1:
        test_options.background = sys.argv[1]

    result = asyncio.run(VideoGenerator().generate_video(test_citation, test_options))
    console.print(f"\n[bold]Test complete.[/] Video at: {result.path}")
