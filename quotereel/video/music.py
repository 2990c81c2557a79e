"""Background music selection for quotereel videos.

Maps a mood to a small catalogue of tracks (``music.catalogue`` in
config.yaml) and resolves a local file for the chosen track. Lookup order:

    1. A bundled asset (``file``) that exists on disk
    2. A previously cached copy in the music directory (keyed by track id)
    3. A download from the track's ``url``
    4. A synthesized placeholder tone (mono 16-bit PCM WAV)

The placeholder keeps the pipeline working end to end without a licensed
music library. Cached files are reused across requests for the same track.
"""

import random
import re
import time
import uuid
import wave
from pathlib import Path

import httpx
import numpy as np
from rich.console import Console

from quotereel.config import resolve_path
from quotereel.errors import MusicUnavailableError
from quotereel.models import MusicTrack

console = Console()

DEFAULT_TRACK_SECONDS = 30.0


def parse_duration(value: str | int | float | None) -> float:
    """Parse "MM:SS" or "HH:MM:SS" (or plain seconds) into seconds."""
    if value is None:
        return DEFAULT_TRACK_SECONDS
    if isinstance(value, (int, float)):
        return float(value)
    try:
        parts = [int(p) for p in str(value).split(":")]
    except ValueError:
        return DEFAULT_TRACK_SECONDS
    if len(parts) == 2:
        return float(parts[0] * 60 + parts[1])
    if len(parts) == 3:
        return float(parts[0] * 3600 + parts[1] * 60 + parts[2])
    if len(parts) == 1:
        return float(parts[0])
    return DEFAULT_TRACK_SECONDS


def partial_path(output_path: Path) -> Path:
    """Writer-private temp name next to ``output_path``."""
    return output_path.with_name(f"{output_path.name}.{uuid.uuid4().hex[:8]}.partial")


def write_tone_wav(
    output_path: Path,
    duration: float,
    *,
    sample_rate: int = 44100,
    frequency: float = 440.0,
    amplitude: float = 0.1,
) -> Path:
    """Write a mono 16-bit PCM WAV containing a single sine tone."""
    num_samples = int(sample_rate * duration)
    t = np.arange(num_samples, dtype=np.float64) / sample_rate
    samples = (np.sin(2 * np.pi * frequency * t) * amplitude * 32767).astype("<i2")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    # Each writer gets its own sibling, renamed into place once complete.
    tmp_path = partial_path(output_path)
    try:
        with wave.open(str(tmp_path), "wb") as wav:
            wav.setnchannels(1)
            wav.setsampwidth(2)
            wav.setframerate(sample_rate)
            wav.writeframes(samples.tobytes())
        tmp_path.replace(output_path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
    return output_path


class MusicSelector:
    """Picks and materializes a background track for a mood."""

    def __init__(
        self,
        config: dict | None = None,
        music_dir: Path | None = None,
        rng: random.Random | None = None,
    ):
        config = config or {}
        music_config = config.get("music", {}) or {}
        self.catalogue: dict = music_config.get("catalogue", {}) or {}
        self.placeholder: dict = music_config.get("placeholder", {}) or {}
        self.cache_max_age_days = music_config.get("cache_max_age_days", 7)
        self.music_dir = Path(music_dir) if music_dir else resolve_path(
            music_config.get("dir", "public/music/downloaded")
        )
        self.rng = rng or random.Random()

    def tracks_for(self, mood: str) -> list[MusicTrack]:
        """Catalogue entries for a mood (empty if the mood is unknown)."""
        tracks = []
        for entry in self.catalogue.get(mood, []) or []:
            tracks.append(MusicTrack(
                id=entry["id"],
                title=entry.get("title", f"Track {entry['id']}"),
                artist=entry.get("artist", "Unknown"),
                duration=parse_duration(entry.get("duration")),
                mood=mood,
                genre=entry.get("genre", ""),
                license=entry.get("license", "Creative Commons"),
                file=entry.get("file"),
                url=entry.get("url"),
            ))
        return tracks

    def cache_path(self, track: MusicTrack, suffix: str = ".wav") -> Path:
        safe_title = re.sub(r"[^a-zA-Z0-9]", "_", track.title)
        return self.music_dir / f"{track.id}-{safe_title}{suffix}"

    def select_track(self, mood: str) -> MusicTrack:
        """Choose a track for the mood and make sure it exists locally.

        Raises:
            MusicUnavailableError: No catalogue entry for the mood, or the
                track file could not be produced.
        """
        tracks = self.tracks_for(mood)
        if not tracks:
            raise MusicUnavailableError(f"No music tracks configured for mood '{mood}'")

        track = self.rng.choice(tracks)
        track.local_path = self._materialize(track)
        console.print(f"[cyan]Music selected:[/] {track.title} - {track.artist} [dim]({mood})[/dim]")
        return track

    def get_track(self, mood: str) -> Path | None:
        """Path to a ready-to-mix file for the mood, or None to go silent."""
        try:
            return self.select_track(mood).local_path
        except MusicUnavailableError as e:
            console.print(f"[yellow]{e}. Continuing without music.[/yellow]")
            return None

    def _materialize(self, track: MusicTrack) -> Path:
        if track.file:
            bundled = resolve_path(track.file)
            if bundled.exists():
                return bundled
            console.print(f"[yellow]Music asset not found: {bundled}[/yellow]")

        for suffix in (".mp3", ".wav"):
            cached = self.cache_path(track, suffix)
            if cached.exists() and cached.stat().st_size > 0:
                console.print(f"[dim]Music cache hit: {cached.name}[/dim]")
                return cached

        if track.url:
            downloaded = self._download(track)
            if downloaded is not None:
                return downloaded

        try:
            return self._synthesize(track)
        except OSError as e:
            raise MusicUnavailableError(
                f"Could not create placeholder audio for '{track.title}': {e}"
            ) from e

    def _download(self, track: MusicTrack) -> Path | None:
        """Fetch a track from its URL. Returns None on any failure."""
        suffix = Path(httpx.URL(track.url).path).suffix or ".mp3"
        output_path = self.cache_path(track, suffix)
        tmp_path = partial_path(output_path)
        console.print(f"[dim]Downloading music: {track.title}[/dim]")
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with httpx.stream("GET", track.url, timeout=60, follow_redirects=True) as stream:
                stream.raise_for_status()
                with open(tmp_path, "wb") as f:
                    for chunk in stream.iter_bytes(chunk_size=65536):
                        f.write(chunk)
            tmp_path.replace(output_path)
        except (httpx.HTTPError, OSError) as e:
            console.print(f"[yellow]Music download failed for {track.title}: {e}[/yellow]")
            tmp_path.unlink(missing_ok=True)
            return None
        return output_path

    def _synthesize(self, track: MusicTrack) -> Path:
        output_path = self.cache_path(track, ".wav")
        console.print(
            f"[dim]Synthesizing placeholder audio for {track.title} "
            f"({track.duration:.0f}s)[/dim]"
        )
        return write_tone_wav(
            output_path,
            track.duration,
            sample_rate=self.placeholder.get("sample_rate", 44100),
            frequency=self.placeholder.get("frequency", 440),
            amplitude=self.placeholder.get("amplitude", 0.1),
        )

    def clean_cache(self, max_age_days: float | None = None) -> int:
        """Remove cached tracks older than max_age_days. Returns the count removed."""
        if not self.music_dir.exists():
            return 0
        if max_age_days is None:
            max_age_days = self.cache_max_age_days

        cutoff = time.time() - (max_age_days * 86400)
        removed = 0
        for f in self.music_dir.iterdir():
            if f.is_file() and f.suffix in (".mp3", ".wav", ".partial") and f.stat().st_mtime < cutoff:
                f.unlink()
                removed += 1

        if removed:
            console.print(f"[dim]Cleaned {removed} expired music files from cache.[/dim]")
        return removed
