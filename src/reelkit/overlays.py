"""Text overlay rendering — burn a scene's caption into every frame.

The caption is rendered once with Pillow as an RGBA patch (optional
background box, hard drop shadow, text) and alpha-blended onto each
frame through moviepy's clip.transform.

Placement uses the style's (position, alignment) pair:

  alignment → horizontal anchor: left margin | centered | right margin
  position  → vertical anchor:   top margin  | centered | bottom margin

Pixel constants are defined on the 1080x1920 reference frame and scale
linearly with the actual frame, so a test render at 180x320 lays out the
same way as a full-size one.
"""

from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw
from moviepy import VideoFileClip

from .common import load_font, parse_css_color, parse_text_shadow
from .settings import RenderSettings
from .styles import TextStyle


# ── Constants ────────────────────────────────────────────────────

REF_W = 1080
REF_H = 1920

TEXT_MARGIN_X = 50           # left/right margin at REF_W
TEXT_MARGIN_TOP = 100        # top margin at REF_H
TEXT_MARGIN_BOTTOM = 150     # bottom margin at REF_H, clears platform UI
FONT_SCALE = 2               # style fontSize is in CSS px at half resolution
MIN_FONT_PX = 8

BOX_PADDING_X = 24           # background box padding at REF_W
BOX_PADDING_Y = 12
BOX_RADIUS = 12

DEFAULT_SHADOW = (2, 2, (0, 0, 0, 178))   # black @ 0.7, matches drawtext default


def _scaled(value: int, frame_dim: int, ref_dim: int) -> int:
    """Scale a reference pixel value, keeping its sign and at least 1px."""
    if value == 0:
        return 0
    scaled = max(1, round(abs(value) * frame_dim / ref_dim))
    return scaled if value > 0 else -scaled


# ── Position computation ─────────────────────────────────────────


def compute_text_position(
    position: str,
    alignment: str,
    patch_w: int,
    patch_h: int,
    frame_w: int,
    frame_h: int,
) -> tuple[int, int]:
    """Compute the (x, y) top-left corner for a caption patch.

    Args:
        position: "top", "center" or "bottom" (vertical anchor).
        alignment: "left", "center" or "right" (horizontal anchor).
        patch_w, patch_h: Rendered caption patch size.
        frame_w, frame_h: Frame size.

    Returns:
        (x, y), clamped so the patch stays inside the frame.
    """
    margin_x = _scaled(TEXT_MARGIN_X, frame_w, REF_W)
    margin_top = _scaled(TEXT_MARGIN_TOP, frame_h, REF_H)
    margin_bottom = _scaled(TEXT_MARGIN_BOTTOM, frame_h, REF_H)

    if alignment == "left":
        x = margin_x
    elif alignment == "right":
        x = frame_w - patch_w - margin_x
    else:  # center
        x = (frame_w - patch_w) // 2

    if position == "top":
        y = margin_top
    elif position == "bottom":
        y = frame_h - patch_h - margin_bottom
    else:  # center
        y = (frame_h - patch_h) // 2

    x = max(0, min(x, frame_w - patch_w))
    y = max(0, min(y, frame_h - patch_h))
    return x, y


# ── Patch rendering ──────────────────────────────────────────────


def font_size_for(style: TextStyle, frame_w: int) -> int:
    return max(MIN_FONT_PX, round(style.font_size * FONT_SCALE * frame_w / REF_W))


def render_text_patch(text: str, style: TextStyle, frame_w: int) -> np.ndarray:
    """Render a caption to an RGBA patch.

    Layers, back to front: rounded background box (only if the style has
    backgroundColor), drop shadow, text.

    Returns:
        numpy array of shape (h, w, 4), dtype uint8.
    """
    font = load_font(font_size_for(style, frame_w), style.font_family, style.font_weight)
    color = parse_css_color(style.color)

    if style.shadow_disabled:
        shadow_x, shadow_y, shadow_color = 0, 0, (0, 0, 0, 0)
    elif style.text_shadow:
        shadow_x, shadow_y, shadow_color = parse_text_shadow(style.text_shadow)
    else:
        shadow_x, shadow_y, shadow_color = DEFAULT_SHADOW
    shadow_x = _scaled(shadow_x, frame_w, REF_W)
    shadow_y = _scaled(shadow_y, frame_w, REF_W)

    if style.background_color:
        pad_x = _scaled(BOX_PADDING_X, frame_w, REF_W)
        pad_y = _scaled(BOX_PADDING_Y, frame_w, REF_W)
    else:
        pad_x = pad_y = 0

    # Measure text.
    draw_tmp = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    left, top, right, bottom = draw_tmp.textbbox((0, 0), text, font=font)
    text_w = right - left
    text_h = bottom - top

    patch_w = max(1, text_w + 2 * pad_x + abs(shadow_x))
    patch_h = max(1, text_h + 2 * pad_y + abs(shadow_y))

    img = Image.new("RGBA", (patch_w, patch_h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img, "RGBA")

    if style.background_color:
        draw.rounded_rectangle(
            [(0, 0), (patch_w - 1, patch_h - 1)],
            radius=_scaled(BOX_RADIUS, frame_w, REF_W),
            fill=parse_css_color(style.background_color),
        )

    # Text origin compensates for the bbox offset and a negative shadow.
    tx = pad_x - left + max(0, -shadow_x)
    ty = pad_y - top + max(0, -shadow_y)

    if shadow_x or shadow_y:
        draw.text((tx + shadow_x, ty + shadow_y), text, fill=shadow_color, font=font)
    draw.text((tx, ty), text, fill=color, font=font)

    return np.array(img)


# ── Frame-level compositing ──────────────────────────────────────


def apply_patch_to_frame(
    frame: np.ndarray,
    patch: np.ndarray,
    x: int,
    y: int,
) -> np.ndarray:
    """Alpha-blend an RGBA patch onto an RGB frame at (x, y).

    The patch is clipped to the frame. Returns a new frame; the input is
    not modified.
    """
    frame_h, frame_w = frame.shape[:2]
    result = frame.copy()

    patch_h = min(patch.shape[0], frame_h - y)
    patch_w = min(patch.shape[1], frame_w - x)
    if patch_h <= 0 or patch_w <= 0:
        return result
    patch = patch[:patch_h, :patch_w]

    alpha = patch[:, :, 3:4].astype(np.float32) / 255.0
    rgb = patch[:, :, :3].astype(np.float32)
    dest = result[y:y + patch_h, x:x + patch_w].astype(np.float32)
    blended = dest * (1 - alpha) + rgb * alpha
    result[y:y + patch_h, x:x + patch_w] = blended.astype(np.uint8)
    return result


def burn_text_overlay(
    input_path: str | Path,
    output_path: str | Path,
    text: str,
    style: TextStyle,
    settings: RenderSettings,
) -> None:
    """Composite a caption onto every frame of input_path.

    The output is encoded with the same settings as the framing step so
    normalized clips stay joinable by stream copy.
    """
    with VideoFileClip(str(input_path), audio=False) as clip:
        frame_w, frame_h = clip.size
        patch = render_text_patch(text, style, frame_w)
        patch_h, patch_w = patch.shape[:2]
        x, y = compute_text_position(
            style.position, style.alignment, patch_w, patch_h, frame_w, frame_h,
        )

        def _apply_caption(get_frame, t):
            return apply_patch_to_frame(get_frame(t), patch, x, y)

        captioned = clip.transform(_apply_caption)
        captioned.write_videofile(
            str(output_path),
            fps=settings.fps,
            codec=settings.codec,
            audio=False,
            preset=settings.preset,
            ffmpeg_params=["-crf", str(settings.crf), "-pix_fmt", "yuv420p"],
            logger=None,
        )
