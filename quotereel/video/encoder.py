"""Encoder stages for quotereel videos.

The pipeline runs three ffmpeg invocations in sequence:

    1. assemble:  PNG frame sequence -> raw H.264 MP4 (yuv420p, faststart)
    2. mix_audio: raw video + looped, volume-scaled music track
    3. optimize:  re-encode under the target platform's bitrate ceiling

``Encoder`` is the seam tests replace; ``FFmpegEncoder`` is the real
implementation. All encoder settings are passed in explicitly rather than
set process-wide, and every invocation runs under a timeout so a hung
ffmpeg is killed instead of stalling the request.
"""

import asyncio
import os
from pathlib import Path

from rich.console import Console

from quotereel.errors import EncodingError
from quotereel.models import VideoOptions
from quotereel.video.workspace import TempWorkspace

console = Console()

STAGE_ASSEMBLE = "assemble"
STAGE_MIX = "mix_audio"
STAGE_OPTIMIZE = "optimize"

DEFAULT_QUALITY = {
    "high": {"preset": "slow", "crf": 18},
    "medium": {"preset": "medium", "crf": 23},
    "low": {"preset": "veryfast", "crf": 28},
}
DEFAULT_PLATFORM = {"preset": "fast", "crf": 28, "maxrate": "2M", "bufsize": "4M"}


def resolve_ffmpeg_path(encoder_config: dict | None = None) -> str:
    """Pick the ffmpeg binary: config, then FFMPEG_PATH, then imageio-ffmpeg."""
    configured = (encoder_config or {}).get("ffmpeg_path")
    if configured:
        return str(configured)
    env_path = os.getenv("FFMPEG_PATH")
    if env_path:
        return env_path
    import imageio_ffmpeg
    return imageio_ffmpeg.get_ffmpeg_exe()


class Encoder:
    """Interface for the three encoder stages."""

    async def assemble(
        self, frame_pattern: Path, fps: int, output_path: Path, *, preset: str, crf: int
    ) -> Path:
        raise NotImplementedError

    async def mix_audio(
        self, video_path: Path, audio_path: Path, volume: float, output_path: Path
    ) -> Path:
        raise NotImplementedError

    async def optimize(
        self,
        video_path: Path,
        output_path: Path,
        *,
        preset: str,
        crf: int,
        maxrate: str,
        bufsize: str,
    ) -> Path:
        raise NotImplementedError


class FFmpegEncoder(Encoder):
    """Runs each stage as an ffmpeg child process."""

    def __init__(
        self,
        ffmpeg_path: str | None = None,
        timeout: float = 600,
        audio_bitrate: str = "128k",
    ):
        self.ffmpeg_path = ffmpeg_path or resolve_ffmpeg_path()
        self.timeout = timeout
        self.audio_bitrate = audio_bitrate

    @classmethod
    def from_config(cls, video_config: dict) -> "FFmpegEncoder":
        encoder_config = video_config.get("encoder", {}) or {}
        return cls(
            ffmpeg_path=resolve_ffmpeg_path(encoder_config),
            timeout=encoder_config.get("timeout_seconds", 600),
            audio_bitrate=encoder_config.get("audio_bitrate", "128k"),
        )

    async def _run(self, stage: str, args: list[str], output_path: Path) -> Path:
        cmd = [self.ffmpeg_path, "-y", "-hide_banner", "-loglevel", "error", *args, str(output_path)]
        console.print(f"[dim]ffmpeg {stage}: {Path(output_path).name}[/dim]")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncodingError(f"Could not start ffmpeg ({self.ffmpeg_path}): {e}", stage) from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise EncodingError(f"ffmpeg timed out after {self.timeout}s", stage)

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()[-500:]
            raise EncodingError(
                f"ffmpeg exited with code {proc.returncode}: {detail}",
                stage,
                returncode=proc.returncode,
            )
        if not Path(output_path).exists():
            raise EncodingError(f"ffmpeg reported success but {output_path} is missing", stage)
        return Path(output_path)

    async def assemble(self, frame_pattern, fps, output_path, *, preset, crf):
        args = [
            "-framerate", str(fps),
            "-i", str(frame_pattern),
            "-c:v", "libx264",
            "-preset", preset,
            "-crf", str(crf),
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
        ]
        return await self._run(STAGE_ASSEMBLE, args, output_path)

    async def mix_audio(self, video_path, audio_path, volume, output_path):
        # The music input is looped so -shortest always ends on the video's
        # length, never on a short track.
        args = [
            "-i", str(video_path),
            "-stream_loop", "-1",
            "-i", str(audio_path),
            "-filter_complex", f"[1:a]volume={volume}[music]",
            "-map", "0:v",
            "-map", "[music]",
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-shortest",
        ]
        return await self._run(STAGE_MIX, args, output_path)

    async def optimize(self, video_path, output_path, *, preset, crf, maxrate, bufsize):
        args = [
            "-i", str(video_path),
            "-c:v", "libx264",
            "-preset", preset,
            "-crf", str(crf),
            "-maxrate", str(maxrate),
            "-bufsize", str(bufsize),
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-movflags", "+faststart",
        ]
        return await self._run(STAGE_OPTIMIZE, args, output_path)


class EncoderPipeline:
    """Sequences the three stages for one request's workspace."""

    def __init__(self, encoder: Encoder, video_config: dict | None = None):
        video_config = video_config or {}
        self.encoder = encoder
        self.fps = video_config.get("fps", 30)
        self.quality = {**DEFAULT_QUALITY, **(video_config.get("quality", {}) or {})}
        self.platforms = video_config.get("platforms", {}) or {}

    def quality_settings(self, quality: str) -> dict:
        return self.quality.get(quality, DEFAULT_QUALITY["medium"])

    def platform_settings(self, video_format: str) -> dict:
        return {**DEFAULT_PLATFORM, **(self.platforms.get(video_format, {}) or {})}

    async def assemble(self, workspace: TempWorkspace, options: VideoOptions) -> Path:
        q = self.quality_settings(options.quality)
        console.print(f"[cyan]Assembling frames[/] [dim](preset {q['preset']}, crf {q['crf']})[/dim]")
        return await self.encoder.assemble(
            workspace.frame_pattern, self.fps, workspace.raw_video,
            preset=q["preset"], crf=q["crf"],
        )

    async def mix_audio(
        self,
        workspace: TempWorkspace,
        video_path: Path,
        music_path: Path,
        volume: float,
    ) -> Path:
        """Mix music in; on failure return ``video_path`` unchanged."""
        console.print(f"[cyan]Mixing music[/] {Path(music_path).name} at {volume * 100:.0f}% vol")
        try:
            return await self.encoder.mix_audio(video_path, music_path, volume, workspace.muxed_video)
        except EncodingError as e:
            console.print(f"[yellow]Music mix failed ({e}), continuing without music.[/yellow]")
            return video_path

    async def optimize(self, workspace: TempWorkspace, video_path: Path, video_format: str) -> Path:
        p = self.platform_settings(video_format)
        console.print(
            f"[cyan]Optimizing for {video_format}[/] "
            f"[dim](maxrate {p['maxrate']}, bufsize {p['bufsize']})[/dim]"
        )
        return await self.encoder.optimize(
            video_path, workspace.optimized_video,
            preset=p["preset"], crf=p["crf"], maxrate=p["maxrate"], bufsize=p["bufsize"],
        )
