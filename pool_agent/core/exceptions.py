"""
Pipeline exception hierarchy.

Only ConfigurationError is allowed to escape a pipeline run; everything else
is caught at the stage boundary and folded into per-item state.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(PipelineError):
    """A required external dependency is not configured; the run never starts."""

    def __init__(self, pipeline: str, missing: list[str]) -> None:
        self.pipeline = pipeline
        self.missing = missing
        super().__init__(f"{pipeline} pipeline is missing configuration: {', '.join(missing)}")


class ModelOutputError(PipelineError):
    """Model response did not match the expected shape."""


class ImageGenerationError(PipelineError):
    """The image provider reported an error for a job."""


class ImageGenerationTimeout(ImageGenerationError):
    """Polling exhausted its attempt budget without a ready or error status."""
