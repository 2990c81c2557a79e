"""
Shared fixtures for quotereel tests.

Everything is rendered at tiny resolutions and low fps, and ffmpeg is
replaced by ``FakeEncoder``, so the suite runs without any binaries.
"""

from pathlib import Path

import pytest
from PIL import Image

from quotereel.errors import EncodingError
from quotereel.models import CitationData
from quotereel.video.encoder import Encoder
from quotereel.video.generator import VideoGenerator
from quotereel.video.music import MusicSelector


class FakeEncoder(Encoder):
    """Writes placeholder files instead of running ffmpeg.

    ``fail_stage`` makes the named stage raise ``EncodingError``.
    """

    def __init__(self, fail_stage: str | None = None):
        self.fail_stage = fail_stage
        self.calls: list[tuple[str, dict]] = []
        self.frames_at_assemble: int | None = None

    def _finish(self, stage: str, output_path: Path, payload: bytes, **details) -> Path:
        self.calls.append((stage, details))
        if stage == self.fail_stage:
            raise EncodingError(f"fake {stage} failure", stage, returncode=1)
        Path(output_path).write_bytes(payload)
        return Path(output_path)

    async def assemble(self, frame_pattern, fps, output_path, *, preset, crf):
        self.frames_at_assemble = len(list(Path(frame_pattern).parent.glob("frame-*.png")))
        return self._finish("assemble", output_path, b"raw", fps=fps, preset=preset, crf=crf)

    async def mix_audio(self, video_path, audio_path, volume, output_path):
        return self._finish(
            "mix_audio", output_path, b"muxed", audio=Path(audio_path), volume=volume
        )

    async def optimize(self, video_path, output_path, *, preset, crf, maxrate, bufsize):
        return self._finish(
            "optimize", output_path, b"optimized-" + Path(video_path).name.encode(),
            preset=preset, crf=crf, maxrate=maxrate, bufsize=bufsize,
        )

    @property
    def stages(self) -> list[str]:
        return [stage for stage, _ in self.calls]


@pytest.fixture
def small_config(tmp_path):
    """Config with miniature formats and fonts, pointed at tmp_path."""
    return {
        "video": {
            "fps": 2,
            "min_duration": 10,
            "max_duration": 60,
            "default_duration": 12,
            "formats": {
                "instagram": [54, 96],
                "tiktok": [54, 96],
                "square": [60, 60],
            },
            "output_dir": str(tmp_path / "output"),
            "temp_dir": str(tmp_path / "temp"),
            "image_cache_dir": str(tmp_path / "image_cache"),
            "render_workers": 1,
            "text": {
                "padding": 4,
                "max_font_size": 20,
                "min_font_size": 6,
                "font_step": 2,
                "max_text_height": 40,
                "slide_offset": 5,
                "author_gap": 6,
            },
            "quality": {
                "high": {"preset": "slow", "crf": 18},
                "medium": {"preset": "medium", "crf": 23},
                "low": {"preset": "veryfast", "crf": 28},
            },
            "platforms": {
                "instagram": {"preset": "fast", "crf": 28, "maxrate": "2M", "bufsize": "4M"},
                "tiktok": {"preset": "fast", "crf": 26, "maxrate": "3M", "bufsize": "6M"},
            },
        },
        "default_theme": "motivation",
        "themes": {
            "motivation": {
                "background": "#1a1a2e",
                "text": "#ffffff",
                "accent": "#ff6b6b",
                "keywords": "motivation",
                "mood": "motivational",
            },
            "wisdom": {
                "background": "#2c3e50",
                "text": "#ecf0f1",
                "accent": "#3498db",
                "keywords": "wisdom",
                "mood": "calm",
            },
        },
        "music": {
            "dir": str(tmp_path / "music"),
            "placeholder": {"sample_rate": 8000, "frequency": 440, "amplitude": 0.1},
            "catalogue": {
                "calm": [{"id": 5, "title": "Serenity", "artist": "Calm Composer", "duration": "00:02"}],
                "motivational": [
                    {"id": 3, "title": "Rising Energy", "artist": "Power Composer", "duration": "00:02"},
                ],
            },
        },
    }


@pytest.fixture
def citation():
    return CitationData(
        content="The only way to do great work is to love what you do.",
        author="Steve Jobs",
        theme="motivation",
        hashtags=["motivation"],
    )


@pytest.fixture
def fake_encoder():
    return FakeEncoder()


@pytest.fixture
def music_selector(small_config):
    return MusicSelector(small_config)


@pytest.fixture
def make_generator(small_config):
    """Build a VideoGenerator wired to fakes; override any keyword."""
    def _make(**overrides) -> VideoGenerator:
        kwargs = {
            "encoder": FakeEncoder(),
            "image_provider": lambda theme, w, h: None,
        }
        kwargs.update(overrides)
        return VideoGenerator(small_config, **kwargs)
    return _make


@pytest.fixture
def image_files(tmp_path):
    """Three solid-colour PNGs on disk: red, green, blue."""
    paths = []
    for name, color in (("red", (255, 0, 0)), ("green", (0, 255, 0)), ("blue", (0, 0, 255))):
        path = tmp_path / "images" / f"{name}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (80, 40), color).save(path)
        paths.append(str(path))
    return paths


@pytest.fixture
def failing_encoder():
    """Factory for a FakeEncoder that fails at the given stage."""
    return lambda stage: FakeEncoder(fail_stage=stage)
