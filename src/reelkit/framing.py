"""Frame geometry — map a clip onto the fixed vertical output frame.

Two modes, chosen by the scene's cropScale:

  fit  (cropScale <= 1): scale the clip down until it fits inside the
       output frame and pad the rest, content centered. No stretching
       and nothing is cut off.
  zoom (cropScale > 1):  fit as above, then cut a window of
       (W / cropScale) x (H / cropScale) out of the fitted frame and
       scale it back up to W x H.

The crop window's top-left corner sits at

    x = cropX * (W - cropW)
    y = cropY * (H - cropH)

so cropX/cropY are the normalized position of the window's origin:
0 pins the window to the left/top edge, 1 to the right/bottom edge.
Sizes and offsets round half-up to whole pixels.
"""

from dataclasses import dataclass

from .common import round_half_up
from .settings import RenderSettings
from .template import TrimData


@dataclass(frozen=True)
class CropWindow:
    x: int
    y: int
    width: int
    height: int


def compute_crop_window(
    crop_x: float,
    crop_y: float,
    crop_scale: float,
    output_width: int = 1080,
    output_height: int = 1920,
) -> CropWindow | None:
    """Crop window in output-frame pixels, or None when not zoomed."""
    if crop_scale <= 1:
        return None
    crop_w = int(round_half_up(output_width / crop_scale))
    crop_h = int(round_half_up(output_height / crop_scale))
    x = int(round_half_up(crop_x * (output_width - crop_w)))
    y = int(round_half_up(crop_y * (output_height - crop_h)))
    return CropWindow(x=x, y=y, width=crop_w, height=crop_h)


def fit_filters(width: int, height: int) -> list[str]:
    """Scale to fit inside width x height, centered pad for the rest."""
    return [
        f"scale={width}:{height}:force_original_aspect_ratio=decrease",
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:color=black",
    ]


def build_frame_filter(
    settings: RenderSettings,
    trim_data: TrimData | None,
    duration: float,
) -> str:
    """Build the -vf chain that normalizes one clip for a scene.

    Besides framing, the chain fixes pixel aspect and fps and holds the
    last frame long enough that a short clip still fills `duration`
    (the caller caps output length with -t).
    """
    w, h = settings.width, settings.height
    filters = fit_filters(w, h)

    if trim_data is not None:
        window = compute_crop_window(
            trim_data.crop_x, trim_data.crop_y, trim_data.crop_scale, w, h,
        )
        if window is not None:
            filters.append(f"crop={window.width}:{window.height}:{window.x}:{window.y}")
            filters.append(f"scale={w}:{h}")

    filters.extend([
        "setsar=1",
        f"fps={settings.fps}",
        f"tpad=stop_mode=clone:stop_duration={duration:.3f}",
        "format=yuv420p",
    ])
    return ",".join(filters)
