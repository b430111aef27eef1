from __future__ import annotations

from typing import Optional


class WarpOverlayError(RuntimeError):
    pass


class ConfigError(WarpOverlayError):
    """Invalid configuration or an input device/file that cannot be opened."""


class BackendError(WarpOverlayError):
    """The requested compute backend cannot be created."""


class PipelineError(WarpOverlayError):
    """A pipeline stage failed. Fatal for the run."""

    def __init__(self, stage: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.cause = cause


class SecondaryExhausted(WarpOverlayError):
    """The secondary video has no more frames."""
