"""Frame rendering and the frame sequence writer.

``FrameRenderer`` composes one still for a progress value: background
first, then the animated quote, the author line and optional branding.
``FrameSequenceGenerator`` drives it across ``duration * fps`` frames and
writes ``frame-000000.png``, ``frame-000001.png``, ... into the request
workspace. This is the hot path, so everything that does not depend on
progress (layout, fonts, background images) is prepared up front.
"""

import asyncio

from PIL import Image, ImageDraw
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn

from quotereel.config import hex_to_rgb
from quotereel.errors import ResourceError
from quotereel.models import CitationData, Frame, VideoOptions
from quotereel.video.backgrounds import Background
from quotereel.video.text import (
    animation_state,
    compute_layout,
    draw_centered_lines,
    get_font,
    wrap_text,
)
from quotereel.video.workspace import TempWorkspace

console = Console()


def total_frames(duration: int, fps: int) -> int:
    return duration * fps


class FrameRenderer:
    """Renders single frames for one citation and option set."""

    def __init__(
        self,
        citation: CitationData,
        options: VideoOptions,
        background: Background,
        palette: dict,
        video_config: dict | None = None,
        font_loader=get_font,
    ):
        video_config = video_config or {}
        self.citation = citation
        self.options = options
        self.background = background
        self.width = background.width
        self.height = background.height

        self.text_config = video_config.get("text", {}) or {}
        self.branding = video_config.get("branding", {}) or {}
        self.text_color = hex_to_rgb(palette["text"])
        self.accent_color = hex_to_rgb(palette["accent"])

        shadow = self.text_config.get("shadow", {}) or {}
        self.shadow_offset = tuple(shadow.get("offset", [2, 2]))
        self.shadow_opacity = shadow.get("opacity", 0.8)

        self.font_loader = font_loader
        self.layout = compute_layout(
            citation.content, self.width, self.height, self.text_config, font_loader
        )

    def render(self, progress: float) -> Image.Image:
        """Compose the frame at ``progress`` in [0, 1)."""
        img = self.background.draw(progress).convert("RGBA")
        overlay = Image.new("RGBA", img.size, (0, 0, 0, 0))

        content = self.citation.content
        state = animation_state(
            self.options.animation,
            progress,
            len(content),
            self.text_config.get("slide_offset", 50),
        )
        layout = self.layout
        start_y = layout.start_y + state.y_offset

        # Partial typewriter text is re-wrapped but keeps the full text's
        # vertical start, so lines don't jump as characters appear.
        if state.visible_chars < len(content):
            partial = content[: state.visible_chars]
            lines = wrap_text(partial, layout.max_width, layout.font.getlength) if partial else []
        else:
            lines = layout.lines

        draw_centered_lines(
            overlay, lines, layout.font, start_y, layout.line_height,
            self.text_color, state.opacity, self.shadow_offset, self.shadow_opacity,
        )

        if self.citation.author and state.author_opacity > 0:
            author_y = start_y + layout.total_height + self.text_config.get("author_gap", 60)
            draw_centered_lines(
                overlay, [f"— {self.citation.author}"], layout.author_font,
                author_y, layout.line_height, self.accent_color, state.author_opacity,
                self.shadow_offset, self.shadow_opacity,
            )

        if self.branding.get("enabled", False):
            self._draw_branding(overlay)

        return Image.alpha_composite(img, overlay).convert("RGB")

    def _draw_branding(self, overlay: Image.Image) -> None:
        text = self.branding.get("text", "")
        if not text:
            return
        font = self.font_loader(self.branding.get("font_size", 28))
        draw = ImageDraw.Draw(overlay)
        alpha = int(255 * self.branding.get("opacity", 0.25))
        y = self.height - self.branding.get("bottom_margin", 80)
        draw.text((self.width / 2, y), text, fill=(255, 255, 255, alpha), font=font, anchor="mm")


class FrameSequenceGenerator:
    """Writes every frame of the video into the workspace, in index order."""

    def __init__(
        self,
        renderer: FrameRenderer,
        workspace: TempWorkspace,
        fps: int = 30,
        workers: int = 1,
        compress_level: int = 1,
    ):
        self.renderer = renderer
        self.workspace = workspace
        self.fps = fps
        self.workers = max(1, workers)
        self.compress_level = compress_level

    def _render_and_write(self, index: int, count: int) -> Frame:
        progress = index / count
        path = self.workspace.frame_path(index)
        img = self.renderer.render(progress)
        try:
            img.save(path, "PNG", compress_level=self.compress_level)
        except OSError as e:
            raise ResourceError(f"Could not write frame {path.name}: {e}") from e
        return Frame(index=index, progress=progress, path=path)

    async def generate(self, duration: int) -> list[Frame]:
        """Render ``duration * fps`` frames.

        With one worker each frame is written before the next one starts.
        With more, a bounded number render concurrently; filenames are fixed
        by index, so the encoder still reads them in temporal order.
        """
        count = total_frames(duration, self.fps)
        console.print(
            f"[cyan]Rendering {count} frames[/] at "
            f"{self.renderer.width}x{self.renderer.height} @ {self.fps}fps "
            f"[dim][{self.renderer.background.label}, {self.renderer.options.animation}][/dim]"
        )

        frames: list[Frame] = []
        with Progress(
            TextColumn("[dim]frames[/dim]"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("frames", total=count)

            if self.workers == 1:
                for index in range(count):
                    frames.append(await asyncio.to_thread(self._render_and_write, index, count))
                    progress.advance(task)
            else:
                semaphore = asyncio.Semaphore(self.workers)

                async def _one(index: int) -> Frame:
                    async with semaphore:
                        frame = await asyncio.to_thread(self._render_and_write, index, count)
                        progress.advance(task)
                        return frame

                frames = list(await asyncio.gather(*(_one(i) for i in range(count))))

        for frame in frames:
            self.workspace.register_frame(frame.path)
        console.print(f"[dim]{len(frames)} frames written to {self.workspace.frames_dir}[/dim]")
        return frames
