"""Failure taxonomy for the render pipeline."""


class RenderServiceError(Exception):
    """Base class for every error raised by the render service."""


class ConfigError(RenderServiceError):
    pass


class ValidationError(RenderServiceError):
    """Malformed layout parameters. Raised before any media work starts."""


class ProbeError(RenderServiceError):
    """ffprobe could not read codec or duration. Never fatal for a job."""


class TranscodeError(RenderServiceError):
    pass


class RenderError(RenderServiceError):
    pass


class UploadError(RenderServiceError):
    pass


class NetworkError(RenderServiceError):
    """Remote worker could not be reached or answered with a failure."""


class StatusUpdateError(RenderServiceError):
    """Writing status back to the request store failed."""
