"""Clip transform stage — turn one user clip into one normalized clip.

Steps, always in this order:

  1. trim   cut [inTime, outTime) out of the source (frame-accurate
            re-encode). Skipped when the clip already starts at the
            needed window: no trimData, or inTime == 0 and
            outTime >= scene duration.
  2. frame  fit/zoom onto the output frame and normalize the encoding
            (fps, pixel format, exact scene duration). Always runs: it is
            what makes every clip joinable by stream copy.
  3. text   burn the decorated caption into every frame. Skipped when
            the scene has no overlay text.

Text goes last so captions are placed on the final framing and can't be
cropped away. Each step reads one workspace file and writes one; the
input is released as soon as the output exists.
"""

import logging
import subprocess
from pathlib import Path

from .engine import FFmpegEngine, is_decode_failure
from .errors import MediaDecodeError, RenderError, TransformError
from .framing import build_frame_filter
from .overlays import burn_text_overlay
from .settings import RenderSettings
from .styles import TextStyle, decorate_text
from .template import Scene
from .workspace import RenderWorkspace


logger = logging.getLogger(__name__)


def needs_trim(scene: Scene) -> bool:
    trim = scene.trim_data
    if trim is None:
        return False
    return not (trim.in_time == 0 and trim.out_time >= scene.duration)


def caption_for(scene: Scene) -> str | None:
    """The decorated caption to burn in, or None for no text step."""
    if not scene.text_overlay or not scene.text_overlay.strip():
        return None
    return decorate_text(scene.text_overlay.strip(), scene.text_style)


class ClipTransformStage:
    def __init__(self, engine: FFmpegEngine, settings: RenderSettings):
        self.engine = engine
        self.settings = settings

    # ── Individual steps ─────────────────────────────────────────

    def trim(self, source: Path, in_time: float, out_time: float, output: Path) -> None:
        """Cut [in_time, out_time) from source, re-encoding for exact cut points."""
        self.engine.run([
            "-ss", f"{in_time:.3f}",
            "-to", f"{out_time:.3f}",
            "-i", str(source),
            *self.settings.encoder_args(),
            str(output),
        ])

    def frame(self, source: Path, scene: Scene, output: Path) -> None:
        """Fit or zoom onto the output frame; output lasts exactly scene.duration."""
        vf = build_frame_filter(self.settings, scene.trim_data, scene.duration)
        self.engine.run([
            "-i", str(source),
            "-vf", vf,
            "-t", f"{scene.duration:.3f}",
            *self.settings.encoder_args(),
            "-movflags", "+faststart",
            str(output),
        ])

    def caption(self, source: Path, text: str, style: TextStyle, output: Path) -> None:
        burn_text_overlay(source, output, text, style, self.settings)

    # ── Whole transform ──────────────────────────────────────────

    def transform(
        self,
        source: Path,
        scene: Scene,
        workspace: RenderWorkspace,
        scene_index: int,
    ) -> Path:
        """Run trim → frame → text for one scene.

        Args:
            source: The scene's source clip inside the workspace.
            scene: Scene contract (duration, trim/crop, caption).
            workspace: Where intermediates are allocated.
            scene_index: Position in playback order (names artifacts).

        Returns:
            Path of the normalized clip (owned by the workspace).

        Raises:
            MediaDecodeError: The source could not be decoded.
            TransformError: Any other step failure.
        """
        current = source

        if needs_trim(scene):
            trim = scene.trim_data
            out = workspace.allocate_step(scene_index, "trim")
            logger.debug(
                "Scene %s: trim %.3f-%.3f", scene.id, trim.in_time, trim.out_time,
            )
            self._run_step(
                "trim", scene, scene_index,
                self.trim, current, trim.in_time, trim.out_time, out,
            )
            current = self._advance(workspace, current, out)

        out = workspace.allocate_step(scene_index, "frame")
        logger.debug("Scene %s: frame to %dx%d", scene.id, *self.settings.frame_size)
        self._run_step("frame", scene, scene_index, self.frame, current, scene, out)
        current = self._advance(workspace, current, out)

        text = caption_for(scene)
        if text is not None:
            style = scene.text_style or TextStyle()
            out = workspace.allocate_step(scene_index, "text")
            logger.debug("Scene %s: caption %r", scene.id, text)
            self._run_step("text", scene, scene_index, self.caption, current, text, style, out)
            current = self._advance(workspace, current, out)

        return current

    @staticmethod
    def _advance(workspace: RenderWorkspace, consumed: Path, produced: Path) -> Path:
        workspace.release(consumed)
        return produced

    @staticmethod
    def _run_step(step: str, scene: Scene, scene_index: int, fn, *args) -> None:
        try:
            fn(*args)
        except subprocess.CalledProcessError as exc:
            if is_decode_failure(exc.stderr):
                raise MediaDecodeError(
                    f"Clip for scene {scene.id} cannot be decoded",
                    scene_index=scene_index, scene_id=scene.id, stage=step,
                ) from exc
            raise TransformError(
                f"ffmpeg failed during {step} (exit {exc.returncode})",
                scene_index=scene_index, scene_id=scene.id, stage=step,
            ) from exc
        except RenderError:
            raise
        except Exception as exc:
            # OSError from ffmpeg/moviepy, or anything the overlay code trips on.
            raise TransformError(
                f"{step} failed: {exc}",
                scene_index=scene_index, scene_id=scene.id, stage=step,
            ) from exc
