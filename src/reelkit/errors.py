"""Typed render failures.

Every failure a render can end in is a RenderError subclass carrying
where it happened: the scene's position in playback order, the scene id
and the pipeline stage (or transform step). Callers turn these into
user-facing messages; the pipeline never downgrades them to an empty
artifact.
"""


class RenderError(Exception):
    """Base class for all render failures."""

    reason = "render_failed"

    def __init__(
        self,
        message: str,
        *,
        scene_index: int | None = None,
        scene_id: int | None = None,
        stage: str | None = None,
    ):
        self.message = message
        self.scene_index = scene_index
        self.scene_id = scene_id
        self.stage = stage
        super().__init__(message)

    def __str__(self):
        where = []
        if self.stage:
            where.append(f"stage={self.stage}")
        if self.scene_index is not None:
            where.append(f"scene #{self.scene_index}")
        if self.scene_id is not None:
            where.append(f"id={self.scene_id}")
        if not where:
            return self.message
        return f"{self.message} ({', '.join(where)})"


class ValidationError(RenderError, ValueError):
    """Malformed or incomplete Scene/Template data."""

    reason = "validation"


class MediaDecodeError(RenderError):
    """A bound clip cannot be read as video."""

    reason = "media_decode"


class TransformError(RenderError):
    """A trim/frame/overlay step failed for a reason other than decode."""

    reason = "transform"


class ConcatenationError(RenderError):
    """No clips to join, or clips that do not share one format."""

    reason = "concatenation"


class RenderCancelledError(RenderError):
    """The caller cancelled the render between scenes."""

    reason = "cancelled"


class RenderInProgressError(RenderError):
    """Another render of the same template id is still running."""

    reason = "in_progress"
