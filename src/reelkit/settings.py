"""Output format settings shared by every render stage.

Every normalized clip is encoded with exactly these settings, which is
what lets the sequencer join clips by stream copy. Settings come from
the `video:` block of a render manifest:

  video:
    width: 1080
    height: 1920
    fps: 30
    crf: 23
    preset: fast
"""

from dataclasses import asdict, dataclass

from .errors import ValidationError


VALID_PRESETS = {
    "ultrafast", "superfast", "veryfast", "faster", "fast",
    "medium", "slow", "slower", "veryslow",
}


@dataclass(frozen=True)
class RenderSettings:
    width: int = 1080
    height: int = 1920
    fps: int = 30
    crf: int = 23
    preset: str = "fast"
    codec: str = "libx264"
    content_type: str = "video/mp4"

    def __post_init__(self):
        for name in ("width", "height"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0 or value % 2:
                raise ValidationError(
                    f"video.{name} must be a positive even integer, got {value!r}"
                )
        if not isinstance(self.fps, int) or self.fps <= 0:
            raise ValidationError(f"video.fps must be a positive integer, got {self.fps!r}")
        if not 0 <= self.crf <= 51:
            raise ValidationError(f"video.crf must be in [0, 51], got {self.crf!r}")
        if self.preset not in VALID_PRESETS:
            raise ValidationError(
                f"Invalid video.preset '{self.preset}'. Valid: {sorted(VALID_PRESETS)}"
            )

    @property
    def frame_size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def encoder_args(self) -> list[str]:
        """ffmpeg output args for a normalized clip (video only)."""
        return [
            "-c:v", self.codec,
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-an",
        ]

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, video: dict | None) -> "RenderSettings":
        """Build settings from a manifest `video:` block; missing keys use defaults."""
        video = dict(video or {})
        known = {"width", "height", "fps", "crf", "preset", "codec"}
        unknown = set(video) - known
        if unknown:
            raise ValidationError(f"Unknown video settings: {sorted(unknown)}")
        return cls(**video)
