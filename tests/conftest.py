"""Shared test fixtures for reelkit tests."""

import subprocess

import pytest
import imageio_ffmpeg

from reelkit.engine import FFmpegEngine
from reelkit.settings import RenderSettings

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


@pytest.fixture
def make_video(tmp_path):
    """Factory for small synthetic test clips (lavfi color source, no audio).

    make_video("a.mp4", duration=3, size="320x180", color="red")
    """
    def _make(name="clip.mp4", duration=2.0, size="320x180", color="blue", fps=10,
              codec="libx264"):
        out = tmp_path / name
        quality = ["-crf", "28"] if codec == "libx264" else ["-q:v", "5"]
        subprocess.run(
            [
                _FFMPEG, "-y",
                "-f", "lavfi", "-i", f"color=c={color}:s={size}:d={duration}:r={fps}",
                "-c:v", codec, *quality, "-pix_fmt", "yuv420p",
                str(out),
            ],
            check=True,
            capture_output=True,
        )
        return out
    return _make


@pytest.fixture
def source_video(make_video):
    """A 5-second landscape clip (320x180, 10fps)."""
    return make_video("source.mp4", duration=5)


@pytest.fixture
def small_settings():
    """Vertical 180x320 @ 10fps output — fast to encode, same geometry as 1080x1920."""
    return RenderSettings(width=180, height=320, fps=10, crf=30, preset="ultrafast")


@pytest.fixture
def engine():
    return FFmpegEngine()
