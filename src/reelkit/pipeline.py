"""Render pipeline — template + clips in, one vertical video out.

A render walks a small state machine:

  IDLE → INITIALIZING → TRANSFORMING → CONCATENATING → COMPLETE
    |          |              |               |
    +----------+--------------+---------------+--→ FAILED

  INITIALIZING   every scene is filled and bound to a clip, each clip is
                 probed (its reported duration is not trusted) and trim
                 bounds are checked against the probed duration. Any
                 problem fails the render before transform work starts.
  TRANSFORMING   one scene at a time, in playback order. A progress
                 event follows each finished scene. Cancellation is
                 honored before each scene starts.
  CONCATENATING  the Sequencer joins the normalized clips.
  COMPLETE       the joined bytes are returned as a RenderResult.
  FAILED         the typed RenderError is recorded on the job, a final
                 "failed" event is emitted and the error is re-raised.

All intermediate files live in one RenderWorkspace that is removed on
every exit path. Percentages only move forward:
0 while initializing, up to 70 across scenes, 75 when joining, 100 done.
"""

import logging
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, Mapping

from .common import round_half_up
from .engine import FFmpegEngine, default_engine
from .errors import (
    ConcatenationError,
    MediaDecodeError,
    RenderCancelledError,
    RenderError,
    TransformError,
    ValidationError,
)
from .progress import CancelToken, NullSink, ProgressEvent, ProgressStage
from .sequencer import Sequencer
from .settings import RenderSettings
from .template import Location, Scene, Template
from .transform import ClipTransformStage
from .workspace import RenderWorkspace


logger = logging.getLogger(__name__)

# Trim bounds may overshoot the probed duration by container rounding.
TRIM_TOLERANCE = 0.05
# Reported vs. probed durations further apart than this are logged.
REPORTED_DURATION_TOLERANCE = 0.25

PROCESSING_SPAN = 70
CONCATENATING_PERCENT = 75


class RenderState(Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    TRANSFORMING = "transforming"
    CONCATENATING = "concatenating"
    COMPLETE = "complete"
    FAILED = "failed"


_TRANSITIONS = {
    RenderState.IDLE: {RenderState.INITIALIZING, RenderState.FAILED},
    RenderState.INITIALIZING: {RenderState.TRANSFORMING, RenderState.FAILED},
    RenderState.TRANSFORMING: {RenderState.CONCATENATING, RenderState.FAILED},
    RenderState.CONCATENATING: {RenderState.COMPLETE, RenderState.FAILED},
    RenderState.COMPLETE: set(),
    RenderState.FAILED: set(),
}


# ── Inputs and outputs ───────────────────────────────────────────


@dataclass
class ClipSource:
    """A user clip as supplied by the caller.

    `duration` is whatever the caller reported; the pipeline re-probes
    the bytes and trusts only its own measurement.
    """

    data: bytes
    duration: float | None = None
    content_type: str = "video/mp4"
    name: str | None = None

    @classmethod
    def from_path(cls, path: str | Path, duration: float | None = None) -> "ClipSource":
        path = Path(path)
        return cls(data=path.read_bytes(), duration=duration, name=path.name)


@dataclass
class RenderResult:
    data: bytes
    content_type: str
    duration: float
    filename: str

    def save(self, path: str | Path) -> Path:
        """Write the video to path (a directory gets the suggested filename)."""
        path = Path(path)
        if path.is_dir():
            path = path / self.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path


@dataclass
class RenderJob:
    """In-flight state of one render. Owned by a single run() call."""

    template: Template
    clips: dict[tuple[int, int], ClipSource] = field(default_factory=dict)
    state: RenderState = RenderState.IDLE
    failure: RenderError | None = None
    percent: int = 0
    current_clip: int = 0

    @property
    def total_clips(self) -> int:
        return len(self.template.scene_keys())

    def bindings(self) -> Iterator[tuple[Location, Scene, ClipSource | None]]:
        """(location, scene, clip) in playback order."""
        for location, scene in self.template.iter_scenes():
            yield location, scene, self.clips.get((location.location_id, scene.id))

    def transition(self, new_state: RenderState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal render transition {self.state.value} -> {new_state.value}"
            )
        logger.info("Render %s: %s -> %s", self.template.id, self.state.value, new_state.value)
        self.state = new_state

    def advance(self, percent: int) -> int:
        """Move progress forward (never back) and return the new value."""
        self.percent = max(self.percent, min(100, percent))
        return self.percent

    def fail(self, error: RenderError) -> None:
        if self.state in (RenderState.COMPLETE, RenderState.FAILED):
            return
        self.failure = error
        self.transition(RenderState.FAILED)


# ── Pipeline ─────────────────────────────────────────────────────


class RenderPipeline:
    def __init__(
        self,
        engine: FFmpegEngine | None = None,
        settings: RenderSettings | None = None,
        stage: ClipTransformStage | None = None,
        sequencer: Sequencer | None = None,
        workspace_root: str | Path | None = None,
    ):
        self.engine = engine or default_engine()
        self.settings = settings or RenderSettings()
        self.stage = stage or ClipTransformStage(self.engine, self.settings)
        self.sequencer = sequencer or Sequencer(self.engine)
        self.workspace_root = workspace_root

    def render(
        self,
        template: Template,
        clips: Mapping[tuple[int, int], ClipSource],
        progress=None,
        cancel: CancelToken | None = None,
    ) -> RenderResult:
        """Render template with clips keyed by (location_id, scene_id)."""
        return self.run(RenderJob(template=template, clips=dict(clips)), progress, cancel)

    def run(
        self,
        job: RenderJob,
        progress=None,
        cancel: CancelToken | None = None,
    ) -> RenderResult:
        """Drive an IDLE job to COMPLETE, or to FAILED and raise.

        Args:
            job: The job to run; inspect job.state / job.failure afterwards.
            progress: Sink with an emit(event) method (NullSink if None).
            cancel: Token checked before each scene and before joining.

        Returns:
            RenderResult with the final video bytes.

        Raises:
            RenderError: Typed failure (also stored on job.failure).
        """
        if job.state is not RenderState.IDLE:
            raise RuntimeError(f"Job for {job.template.id} already ran ({job.state.value})")
        sink = progress or NullSink()
        cancel = cancel or CancelToken()

        try:
            with self.engine.claim(job.template.id):
                with RenderWorkspace(root=self.workspace_root) as workspace:
                    return self._execute(job, workspace, sink, cancel)
        except RenderError as exc:
            self._fail(job, exc, sink)
            raise
        except (OSError, subprocess.CalledProcessError) as exc:
            error = TransformError(
                f"Unexpected failure: {exc}",
                scene_index=job.current_clip if job.state is RenderState.TRANSFORMING else None,
                stage=job.state.value,
            )
            self._fail(job, error, sink)
            raise error from exc

    # ── Stages ───────────────────────────────────────────────────

    def _execute(self, job, workspace, sink, cancel) -> RenderResult:
        total = job.total_clips

        job.transition(RenderState.INITIALIZING)
        self._emit(job, sink, ProgressStage.INITIALIZING, 0, f"Validating {total} clips...")
        self._initialize(job, workspace)

        job.transition(RenderState.TRANSFORMING)
        normalized = []
        for i, (_, scene, clip) in enumerate(job.bindings()):
            self._check_cancel(cancel, job, i, scene)
            source = workspace.write_source(i, clip.data)
            normalized.append(self.stage.transform(source, scene, workspace, i))
            job.current_clip = i + 1
            self._emit(
                job, sink, ProgressStage.PROCESSING,
                int(round_half_up((i + 1) / total * PROCESSING_SPAN)),
                f"Processed clip {i + 1}/{total}",
                current_clip=i + 1, total_clips=total,
            )

        self._check_cancel(cancel, job, None, None)
        job.transition(RenderState.CONCATENATING)
        self._emit(job, sink, ProgressStage.CONCATENATING, CONCATENATING_PERCENT, "Merging clips...")
        final = self.sequencer.concatenate(normalized, workspace)
        for clip_path in normalized:
            workspace.release(clip_path)

        duration = self.engine.probe(final).duration
        data = final.read_bytes()
        workspace.release(final)

        job.transition(RenderState.COMPLETE)
        self._emit(job, sink, ProgressStage.COMPLETE, 100, "Render complete!")
        logger.info("Rendered %s: %d clips, %.2fs", job.template.id, total, duration)
        return RenderResult(
            data=data,
            content_type=self.settings.content_type,
            duration=duration,
            filename=f"{job.template.id}.mp4",
        )

    def _initialize(self, job: RenderJob, workspace: RenderWorkspace) -> None:
        template = job.template
        if template.type != "reel":
            raise ValidationError(
                f"Template {template.id} is a {template.type}; only reels render to video",
                stage="initializing",
            )
        if job.total_clips == 0:
            raise ConcatenationError(
                f"Template {template.id} has no scenes to render", stage="initializing",
            )

        known = set(template.scene_keys())
        for key in job.clips:
            if key not in known:
                logger.warning("Clip bound to unknown scene %s is ignored", key)

        for i, (location, scene, clip) in enumerate(job.bindings()):
            where = dict(scene_index=i, scene_id=scene.id, stage="initializing")
            if not scene.filled:
                raise ValidationError(
                    f"Scene {scene.id} in '{location.location_name}' has no clip yet", **where,
                )
            if clip is None or not clip.data:
                raise ValidationError(
                    f"Scene {scene.id} is marked filled but no clip was supplied", **where,
                )

            probed = self._probe_bytes(workspace, clip.data, where)
            if (
                clip.duration is not None
                and abs(clip.duration - probed) > REPORTED_DURATION_TOLERANCE
            ):
                logger.warning(
                    "Scene %s: reported clip duration %.3fs, probed %.3fs; using probed",
                    scene.id, clip.duration, probed,
                )

            trim = scene.trim_data
            if trim is None:
                continue
            try:
                trim.validate()
            except ValidationError as exc:
                raise ValidationError(exc.message, **where) from exc
            if trim.out_time > probed + TRIM_TOLERANCE:
                raise ValidationError(
                    f"Trim outTime {trim.out_time}s is past the clip's end ({probed:.3f}s)",
                    **where,
                )

    def _probe_bytes(self, workspace: RenderWorkspace, data: bytes, where: dict) -> float:
        with _probe_file(workspace, data) as path:
            try:
                return self.engine.probe(path).duration
            except MediaDecodeError as exc:
                raise MediaDecodeError(
                    f"Clip for scene {where['scene_id']} cannot be decoded", **where,
                ) from exc

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _check_cancel(cancel: CancelToken, job: RenderJob, index, scene) -> None:
        if not cancel.cancelled:
            return
        if scene is None:
            message = "Render cancelled before concatenation"
        else:
            message = f"Render cancelled before clip {index + 1}/{job.total_clips}"
        raise RenderCancelledError(
            message,
            scene_index=index,
            scene_id=scene.id if scene is not None else None,
            stage=job.state.value,
        )

    @staticmethod
    def _emit(job, sink, stage, percent, message, current_clip=None, total_clips=None):
        sink.emit(ProgressEvent(
            stage=stage,
            percent=job.advance(percent),
            message=message,
            current_clip=current_clip,
            total_clips=total_clips,
        ))

    def _fail(self, job: RenderJob, error: RenderError, sink) -> None:
        logger.error("Render %s failed: %s", job.template.id, error)
        job.fail(error)
        sink.emit(ProgressEvent(
            stage=ProgressStage.FAILED,
            percent=job.percent,
            message=str(error),
            current_clip=error.scene_index + 1 if error.scene_index is not None else None,
            total_clips=job.total_clips,
        ))


@contextmanager
def _probe_file(workspace: RenderWorkspace, data: bytes):
    """Write clip bytes to a short-lived probe file, removed on exit."""
    path = workspace.allocate("probe.mp4")
    try:
        path.write_bytes(data)
        yield path
    finally:
        workspace.release(path)
