"""Error taxonomy for pipeline execution.

Cache-layer, reader and transform errors all derive from
:class:`CnaPipelineError` so callers can catch the whole family at once.
"""

from typing import Optional


class CnaPipelineError(Exception):
    """Base class for all pipeline errors."""


class ArtifactNotFoundError(CnaPipelineError):
    """Requested artifact does not exist in the store."""

    def __init__(self, key: str, path: Optional[str] = None):
        self.key = key
        self.path = path
        location = f" ({path})" if path else ""
        super().__init__(f"Artifact not found for key '{key}'{location}")


class CorruptArtifactError(CnaPipelineError):
    """Stored blob cannot be deserialized into the expected shape."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt artifact for key '{key}': {reason}")


class MalformedInputError(CnaPipelineError):
    """Raw input data is structurally invalid."""


class TransformFailure(CnaPipelineError):
    """A numeric stage precondition was violated.

    ``stage`` and ``key`` are filled in by the executor when the
    transform itself does not know them.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        key: Optional[str] = None,
    ):
        self.message = message
        self.stage = stage
        self.key = key
        super().__init__(message)

    def __str__(self) -> str:
        if self.stage is None:
            return self.message
        where = f"stage '{self.stage}'"
        if self.key:
            where += f" (key '{self.key}')"
        return f"{where}: {self.message}"


class EmptyResultError(CnaPipelineError):
    """Merging per-cell tables produced zero rows."""


class InvalidConfigurationError(CnaPipelineError):
    """Run configuration is inconsistent or out of range."""


class PipelineStateError(CnaPipelineError):
    """Executor was asked to run a stage whose inputs are not available."""
