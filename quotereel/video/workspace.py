"""Per-request temporary workspace for frames and intermediate videos.

Each ``generate_video`` call owns exactly one workspace directory under the
temp root, named from a millisecond timestamp plus a random suffix, so
concurrent requests never write to the same path. Everything the pipeline
creates for the request lives inside it, which lets ``cleanup`` remove the
lot with a single tree delete.
"""

import shutil
import time
import uuid
from pathlib import Path

from rich.console import Console

from quotereel.errors import ResourceError

console = Console()

FRAME_PATTERN = "frame-%06d.png"


class TempWorkspace:
    """Tracks the frames directory and intermediate video paths for a request."""

    def __init__(self, temp_root: Path):
        self.temp_root = Path(temp_root)
        self.root: Path | None = None
        self.frame_paths: list[Path] = []
        self._cleaned = False

    def create(self) -> "TempWorkspace":
        """Create the request directory and its frames subdirectory."""
        name = f"request-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
        try:
            self.temp_root.mkdir(parents=True, exist_ok=True)
            root = self.temp_root / name
            root.mkdir(exist_ok=False)
            (root / "frames").mkdir()
        except OSError as e:
            raise ResourceError(f"Could not create temp workspace in {self.temp_root}: {e}") from e
        self.root = root
        console.print(f"[dim]Workspace: {self.root}[/dim]")
        return self

    def _require_root(self) -> Path:
        if self.root is None:
            raise ResourceError("Workspace has not been created")
        return self.root

    @property
    def frames_dir(self) -> Path:
        return self._require_root() / "frames"

    @property
    def frame_pattern(self) -> Path:
        """printf-style input pattern the encoder reads frames through."""
        return self.frames_dir / FRAME_PATTERN

    def frame_path(self, index: int) -> Path:
        """Zero-padded path for a frame; padding keeps names in temporal order."""
        return self.frames_dir / (FRAME_PATTERN % index)

    def register_frame(self, path: Path) -> None:
        self.frame_paths.append(path)

    @property
    def raw_video(self) -> Path:
        return self._require_root() / "raw.mp4"

    @property
    def muxed_video(self) -> Path:
        return self._require_root() / "muxed.mp4"

    @property
    def optimized_video(self) -> Path:
        return self._require_root() / "optimized.mp4"

    def cleanup(self) -> bool:
        """Delete the workspace. Failures are logged, never raised.

        Returns True if nothing is left on disk.
        """
        if self.root is None or self._cleaned:
            return True

        ok = True
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            pass
        except OSError as e:
            console.print(f"[yellow]Could not remove workspace {self.root}: {e}[/yellow]")
            ok = False

        # Retry what is left file by file so a single locked file does not
        # keep every frame on disk.
        if not ok and self.root.exists():
            for path in sorted(self.root.rglob("*"), reverse=True):
                try:
                    if path.is_dir():
                        path.rmdir()
                    else:
                        path.unlink()
                except OSError as e:
                    console.print(f"[yellow]Could not remove {path}: {e}[/yellow]")
            try:
                self.root.rmdir()
                ok = True
            except OSError:
                pass

        self._cleaned = ok
        if ok:
            console.print(f"[dim]Workspace cleaned: {self.root.name}[/dim]")
        return ok

    def __enter__(self) -> "TempWorkspace":
        return self.create()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
