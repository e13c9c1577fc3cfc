"""Media engine — the one handle through which reelkit touches ffmpeg.

FFmpegEngine wraps the ffmpeg binary bundled with imageio-ffmpeg and
moviepy's probing. One engine per process is enough; default_engine()
builds it lazily on first use. The pipeline takes the engine as a
constructor argument, so tests can pass their own.

The engine also tracks which template ids are currently rendering and
refuses a second overlapping render of the same template.
"""

import functools
import logging
import subprocess
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import imageio_ffmpeg
from moviepy import VideoFileClip

from .errors import MediaDecodeError, RenderInProgressError


logger = logging.getLogger(__name__)

# stderr fragments ffmpeg prints when the input itself is unreadable.
DECODE_FAILURE_MARKERS = (
    "invalid data found when processing input",
    "moov atom not found",
    "could not find codec parameters",
    "does not contain any stream",
    "error while decoding",
    "end of file",
)


@dataclass(frozen=True)
class ClipInfo:
    duration: float
    width: int
    height: int
    fps: float
    codec: str | None = None
    profile: str | None = None

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def stream_format(self) -> tuple[str | None, str | None]:
        """(codec, profile) as ffmpeg reports them, e.g. ('h264', '(High)')."""
        return (self.codec, self.profile)


def is_decode_failure(stderr: str | bytes | None) -> bool:
    """True if ffmpeg's stderr says the input could not be decoded."""
    if not stderr:
        return False
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    text = stderr.lower()
    return any(marker in text for marker in DECODE_FAILURE_MARKERS)


class FFmpegEngine:
    def __init__(self, ffmpeg_exe: str | None = None):
        self.ffmpeg_exe = ffmpeg_exe or imageio_ffmpeg.get_ffmpeg_exe()
        self._claims: set[str] = set()
        self._lock = threading.Lock()

    def run(self, args: list[str]) -> subprocess.CompletedProcess:
        """Run ffmpeg with args; raises CalledProcessError on failure."""
        cmd = [self.ffmpeg_exe, "-hide_banner", "-nostdin", "-y", *args]
        logger.debug("ffmpeg %s", " ".join(args))
        return subprocess.run(cmd, check=True, capture_output=True)

    def probe(self, path: str | Path) -> ClipInfo:
        """Read duration, frame size and fps from a clip's header.

        Raises:
            MediaDecodeError: If the file is not readable video.
        """
        try:
            with VideoFileClip(str(path), audio=False) as clip:
                width, height = clip.size
                infos = clip.reader.infos
                info = ClipInfo(
                    duration=float(clip.duration),
                    width=int(width),
                    height=int(height),
                    fps=float(clip.fps),
                    codec=infos.get("video_codec_name"),
                    profile=infos.get("video_profile"),
                )
        except (OSError, KeyError, ValueError, IndexError, TypeError) as exc:
            raise MediaDecodeError(f"Cannot decode clip {Path(path).name}: {exc}") from exc

        if info.duration <= 0 or info.width <= 0 or info.height <= 0:
            raise MediaDecodeError(f"Clip {Path(path).name} has no video frames")
        return info

    @contextmanager
    def claim(self, template_id: str):
        """Hold the render slot for template_id for the duration of the block."""
        with self._lock:
            if template_id in self._claims:
                raise RenderInProgressError(
                    f"Template {template_id} is already rendering",
                    stage="initializing",
                )
            self._claims.add(template_id)
        try:
            yield
        finally:
            with self._lock:
                self._claims.discard(template_id)

    def is_rendering(self, template_id: str) -> bool:
        with self._lock:
            return template_id in self._claims


@functools.lru_cache(maxsize=1)
def default_engine() -> FFmpegEngine:
    """Process-wide engine, constructed on first use."""
    engine = FFmpegEngine()
    logger.info("Using ffmpeg at %s", engine.ffmpeg_exe)
    return engine
