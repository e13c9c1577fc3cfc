"""reelkit.common — shared utilities.

Contains: rounding helpers for scene timing, color parsing (hex and CSS
rgba), text-shadow parsing, path variable resolution, and font loading.
"""

import functools
import math
import re
from pathlib import Path

from PIL import ImageFont


# ── Font paths ─────────────────────────────────────────────────────
# Template styles name Google-style families (Montserrat, Inter, Poppins).
# They are looked up in these directories; DejaVu Sans is the fallback.

FONT_DIRS = [
    Path.home() / ".local/share/fonts",
    Path.home() / ".fonts",
    Path("/usr/local/share/fonts"),
    Path("/usr/share/fonts"),
]

FALLBACK_FONTS = {
    "regular": Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    "bold": Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
}

WEIGHT_NAMES = {
    "100": "Thin",
    "200": "ExtraLight",
    "300": "Light",
    "400": "Regular",
    "500": "Medium",
    "600": "SemiBold",
    "700": "Bold",
    "800": "ExtraBold",
    "900": "Black",
}


# ── Rounding ───────────────────────────────────────────────────────

def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round half away from zero for positive values (1.25 -> 1.3, 0.5 -> 1).

    Python's round() uses banker's rounding, which would make scene
    timing depend on float representation at .5 boundaries.
    """
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def round_time(seconds: float) -> float:
    """Clamp a timestamp to millisecond precision."""
    return round(seconds, 3)


# ── Color utilities ────────────────────────────────────────────────

_RGBA_RE = re.compile(
    r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*([\d.]+)\s*)?\)"
)


def parse_hex_color(hex_str: str) -> tuple[int, int, int]:
    """Convert '#RRGGBB' or 'RRGGBB' string to (R, G, B) tuple."""
    hex_str = hex_str.lstrip("#")
    if len(hex_str) != 6:
        raise ValueError(f"Invalid hex color: '#{hex_str}'")
    return (int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16))


def parse_css_color(value: str) -> tuple[int, int, int, int]:
    """Parse '#RRGGBB', 'rgb(r,g,b)' or 'rgba(r,g,b,a)' to an RGBA tuple.

    The CSS alpha (0..1) is scaled to 0..255.
    """
    value = value.strip()
    match = _RGBA_RE.fullmatch(value)
    if match:
        r, g, b, a = match.groups()
        alpha = 255 if a is None else round(float(a) * 255)
        return (int(r), int(g), int(b), max(0, min(255, alpha)))
    return (*parse_hex_color(value), 255)


def parse_text_shadow(value: str) -> tuple[int, int, tuple[int, int, int, int]]:
    """Parse a CSS text-shadow like '2px 2px 6px rgba(0,0,0,0.9)'.

    Returns (offset_x, offset_y, rgba). Blur radius is ignored: the
    overlay draws hard shadows.
    """
    color_match = _RGBA_RE.search(value)
    if color_match:
        color = parse_css_color(color_match.group(0))
        lengths = value[:color_match.start()] + value[color_match.end():]
    else:
        hex_match = re.search(r"#[0-9a-fA-F]{6}", value)
        color = parse_css_color(hex_match.group(0)) if hex_match else (0, 0, 0, 255)
        lengths = value if not hex_match else value.replace(hex_match.group(0), "")

    offsets = [int(float(n)) for n in re.findall(r"(-?[\d.]+)px", lengths)]
    if len(offsets) < 2:
        raise ValueError(f"Invalid text shadow: '{value}'")
    return offsets[0], offsets[1], color


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Font loading ───────────────────────────────────────────────────

@functools.lru_cache(maxsize=64)
def find_font_file(family: str, weight: str = "400") -> Path | None:
    """Find a TTF/OTF file for family + weight in the font directories.

    Matches file names like 'Montserrat-ExtraBold.ttf' or
    'OpenSans-Bold.otf'. Returns None if nothing matches.
    """
    stem = family.replace(" ", "")
    weight_name = WEIGHT_NAMES.get(str(weight), "Regular")
    wanted = {
        f"{stem}-{weight_name}".lower(),
        f"{stem}{weight_name}".lower(),
    }
    if weight_name == "Regular":
        wanted.add(stem.lower())

    for font_dir in FONT_DIRS:
        if not font_dir.is_dir():
            continue
        for candidate in font_dir.rglob("*"):
            if candidate.suffix.lower() not in (".ttf", ".otf"):
                continue
            if candidate.stem.lower() in wanted:
                return candidate
    return None


def load_font(
    size: int,
    family: str | None = None,
    weight: str = "400",
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font for family/weight at the given pixel size.

    Falls back to DejaVu Sans (bold for weights >= 600), then to Pillow's
    built-in font.
    """
    candidates = []
    if family:
        found = find_font_file(family, str(weight))
        if found is not None:
            candidates.append(found)

    is_bold = str(weight).isdigit() and int(weight) >= 600
    candidates.append(FALLBACK_FONTS["bold" if is_bold else "regular"])
    candidates.append(FALLBACK_FONTS["regular"])

    for font_path in candidates:
        if font_path.exists():
            try:
                return ImageFont.truetype(str(font_path), size=size)
            except OSError:
                continue
    # Last resort: Pillow default font (scalable since Pillow 10.1).
    return ImageFont.load_default(size=size)
