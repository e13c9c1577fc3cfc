"""Sequencer — join normalized clips into the final video.

Normalized clips all share codec, frame size and frame rate, so joining
is a stream-level splice through ffmpeg's concat demuxer: no re-encode,
no quality loss. The join order is exactly the order given, which the
pipeline builds from Location order, then Scene order.

Cases:
  - no clips:    ConcatenationError.
  - one clip:    copied byte for byte into a fresh output file, so the
                 result never points at a transform artifact that is
                 about to be released.
  - many clips:  concat manifest + `-c copy`.

The shared-format precondition (codec and profile, frame size, fps) is
probed before joining; a mismatch raises ConcatenationError naming the
first offending clip.
"""

import logging
import shutil
import subprocess
from pathlib import Path

from .engine import FFmpegEngine
from .errors import ConcatenationError, MediaDecodeError
from .workspace import RenderWorkspace


logger = logging.getLogger(__name__)

FPS_TOLERANCE = 0.01


def _manifest_line(path: Path) -> str:
    """One concat demuxer line, single quotes escaped the ffmpeg way."""
    escaped = str(path.resolve()).replace("'", "'\\''")
    return f"file '{escaped}'"


class Sequencer:
    def __init__(self, engine: FFmpegEngine):
        self.engine = engine

    def check_compatible(self, clips: list[Path]) -> None:
        """Raise ConcatenationError unless all clips share codec, size and fps."""
        reference = None
        for i, clip in enumerate(clips):
            try:
                info = self.engine.probe(clip)
            except MediaDecodeError as exc:
                raise ConcatenationError(
                    f"Normalized clip {i} is unreadable: {exc.message}",
                    scene_index=i, stage="concatenating",
                ) from exc
            if reference is None:
                reference = info
                continue
            if info.stream_format != reference.stream_format:
                raise ConcatenationError(
                    f"Clip {i} codec is {info.codec} {info.profile}, "
                    f"expected {reference.codec} {reference.profile}",
                    scene_index=i, stage="concatenating",
                )
            if info.size != reference.size:
                raise ConcatenationError(
                    f"Clip {i} is {info.width}x{info.height}, "
                    f"expected {reference.width}x{reference.height}",
                    scene_index=i, stage="concatenating",
                )
            if abs(info.fps - reference.fps) > FPS_TOLERANCE:
                raise ConcatenationError(
                    f"Clip {i} runs at {info.fps}fps, expected {reference.fps}fps",
                    scene_index=i, stage="concatenating",
                )

    def concatenate(self, clips: list[Path], workspace: RenderWorkspace) -> Path:
        """Join clips in order into workspace/final.mp4.

        Args:
            clips: Normalized clip paths, in playback order.
            workspace: Receives the manifest and the output file.

        Returns:
            Path of the joined video (owned by the workspace).

        Raises:
            ConcatenationError: Empty input, incompatible clips, or an
                ffmpeg failure while joining.
        """
        if not clips:
            raise ConcatenationError("No clips to concatenate", stage="concatenating")

        self.check_compatible(clips)
        output = workspace.allocate("final.mp4")

        # Single clip: nothing to join, hand back an independent copy.
        if len(clips) == 1:
            shutil.copyfile(clips[0], output)
            return output

        manifest = workspace.allocate("concat.txt")
        manifest.write_text("\n".join(_manifest_line(c) for c in clips) + "\n")

        logger.info("Concatenating %d clips", len(clips))
        try:
            self.engine.run([
                "-f", "concat",
                "-safe", "0",
                "-i", str(manifest),
                "-c", "copy",
                "-movflags", "+faststart",
                str(output),
            ])
        except subprocess.CalledProcessError as exc:
            raise ConcatenationError(
                f"ffmpeg concat failed (exit {exc.returncode})",
                stage="concatenating",
            ) from exc
        finally:
            workspace.release(manifest)
        return output
