"""Data types shared across the video pipeline."""

from dataclasses import asdict, dataclass, field
from pathlib import Path

from quotereel.errors import InputValidationError

FORMATS = ("instagram", "tiktok", "square")
ANIMATIONS = ("fade-in", "slide-in", "typewriter")
BACKGROUNDS = ("gradient", "solid", "image", "slideshow", "custom")
MOODS = ("inspirational", "calm", "energetic", "emotional", "motivational")
QUALITIES = ("high", "medium", "low")


@dataclass
class CitationData:
    """A quote as produced by the text-generation collaborator."""

    content: str
    theme: str
    author: str | None = None
    hashtags: list[str] = field(default_factory=list)

    def validate(self) -> None:
        if not self.content or not self.content.strip():
            raise InputValidationError("Citation content must not be empty")
        if not self.theme:
            raise InputValidationError("Citation theme must not be empty")


@dataclass
class VideoOptions:
    """Rendering options for one video."""

    duration: int = 30
    format: str = "instagram"
    animation: str = "fade-in"
    background: str = "gradient"
    background_images: list[str] = field(default_factory=list)
    image_overlay_opacity: float = 0.6
    image_transition_duration: float = 3.0
    include_music: bool = False
    music_mood: str = "inspirational"
    music_volume: float = 0.3
    quality: str = "medium"

    def validate(self, min_duration: int = 10, max_duration: int = 60) -> None:
        """Raise InputValidationError if any option is out of range."""
        if isinstance(self.duration, bool) or not isinstance(self.duration, int):
            raise InputValidationError(f"duration must be an integer, got {self.duration!r}")
        if not min_duration <= self.duration <= max_duration:
            raise InputValidationError(
                f"duration must be between {min_duration} and {max_duration} seconds, "
                f"got {self.duration}"
            )
        _check_choice("format", self.format, FORMATS)
        _check_choice("animation", self.animation, ANIMATIONS)
        _check_choice("background", self.background, BACKGROUNDS)
        _check_choice("music_mood", self.music_mood, MOODS)
        _check_choice("quality", self.quality, QUALITIES)
        _check_unit_interval("image_overlay_opacity", self.image_overlay_opacity)
        _check_unit_interval("music_volume", self.music_volume)
        if not self.image_transition_duration > 0:
            raise InputValidationError(
                f"image_transition_duration must be positive, got {self.image_transition_duration}"
            )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GeneratedVideo:
    """The final encoded video plus what callers persist about it."""

    buffer: bytes
    filename: str
    path: Path
    metadata: dict

    def __repr__(self) -> str:
        return (
            f"GeneratedVideo(filename={self.filename!r}, path={str(self.path)!r}, "
            f"size={len(self.buffer)})"
        )


@dataclass
class MusicTrack:
    """One catalogue entry for background music."""

    id: int
    title: str
    artist: str
    duration: float
    mood: str
    genre: str = ""
    license: str = "Creative Commons"
    file: str | None = None
    url: str | None = None
    local_path: Path | None = None


@dataclass
class Frame:
    """A single rendered instant of the timeline."""

    index: int
    progress: float
    path: Path


def _check_choice(name: str, value: str, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise InputValidationError(
            f"{name} must be one of {', '.join(allowed)}; got {value!r}"
        )


def _check_unit_interval(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputValidationError(f"{name} must be a number, got {value!r}")
    if not 0.0 <= value <= 1.0:
        raise InputValidationError(f"{name} must be between 0 and 1, got {value}")
