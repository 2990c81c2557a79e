"""Exceptions raised by the video pipeline."""


class VideoGenerationError(Exception):
    """Base error for a failed video generation.

    ``stage`` names the pipeline step that failed, when there is one.
    """

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage:
            return f"[{self.stage}] {message}"
        return message


class InputValidationError(VideoGenerationError, ValueError):
    """Invalid citation or options, rejected before any work starts."""

    def __init__(self, message: str):
        super().__init__(message, stage="validate")


class ResourceError(VideoGenerationError):
    """The temp workspace or one of its files could not be created."""

    def __init__(self, message: str):
        super().__init__(message, stage="workspace")


class RenderError(VideoGenerationError):
    """A background image could not be loaded or drawn."""

    def __init__(self, message: str):
        super().__init__(message, stage="render")


class EncodingError(VideoGenerationError):
    """An encoder stage exited with an error or timed out."""

    def __init__(self, message: str, stage: str, returncode: int | None = None):
        super().__init__(message, stage=stage)
        self.returncode = returncode


class MusicUnavailableError(VideoGenerationError):
    """No track could be resolved for the requested mood."""

    def __init__(self, message: str):
        super().__init__(message, stage="music")
