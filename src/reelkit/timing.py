"""Timing model — build a reel template from a list of items.

Given the items a scene supplier extracted (each {text, duration?}) and
the target length of the video, lay out:

  Intro (hook) | item 1 | item 2 | ... | item N | Outro (call to action)

Timing rules:
  - Intro window: min(2, total * 0.1) seconds; the intro scene lasts
    that many seconds rounded to a whole second, at least 1.
  - Content: total minus the raw intro and outro windows, split evenly
    over max(len(items), 3) scenes, each rounded to 0.1s (at least 1s).
    An item carrying its own positive duration keeps it.
  - Outro: whatever remains (at least 1s). It absorbs all rounding so
    the scene durations sum to the target whenever the content fits.

Everything here is pure: same inputs, same scenes.
"""

import re
import uuid

from .common import round_half_up, round_time
from .styles import StyleRole, style_for
from .template import Location, Scene, Template


DEFAULT_TOTAL_DURATION = 30.0
MIN_CONTENT_ITEMS = 3
MIN_SCENE_DURATION = 1.0
MAX_INTRO_SECONDS = 2.0
INTRO_FRACTION = 0.1

OUTRO_SCENE_ID = 999
DEFAULT_OUTRO_TEXT = "Follow for more!"

_ORDINAL_RE = re.compile(r"^\d+[\.\)]\s*")


def strip_ordinal(text: str) -> str:
    """'1. Foo' -> 'Foo', '2) Bar' -> 'Bar'."""
    return _ORDINAL_RE.sub("", text).strip()


def _coerce_seconds(value) -> float | None:
    """Return value as positive seconds, or None if missing/invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds != seconds or seconds <= 0:  # NaN or non-positive
        return None
    return seconds


def _item_fields(item) -> tuple[str, float | None]:
    """Accept {text, duration?} dicts or bare strings from the supplier."""
    if isinstance(item, str):
        return item, None
    if isinstance(item, dict):
        text = item.get("text") or ""
        return str(text), _coerce_seconds(item.get("duration"))
    return "", None


def build_template(
    raw_items: list,
    total_duration: float | None,
    intro_text: str | None = None,
    outro_text: str | None = None,
    template_id: str | None = None,
) -> Template:
    """Build a reel Template from supplier items.

    Args:
        raw_items: Items as {text, duration?} dicts (or plain strings).
            Missing or zero durations fall back to the even split.
        total_duration: Target video length in seconds. Missing or
            non-positive values default to DEFAULT_TOTAL_DURATION.
        intro_text: Hook text for the intro scene (None = no overlay).
        outro_text: Call-to-action text (defaults to DEFAULT_OUTRO_TEXT).
        template_id: Id for the template; generated when omitted.

    Returns:
        Template with intro, one location per content item, and outro.
    """
    total = _coerce_seconds(total_duration) or DEFAULT_TOTAL_DURATION
    items = [_item_fields(item) for item in (raw_items or [])]
    item_count = max(len(items), MIN_CONTENT_ITEMS)

    intro_window = min(MAX_INTRO_SECONDS, total * INTRO_FRACTION)
    outro_window = intro_window
    content_time = total - intro_window - outro_window
    time_per_item = content_time / item_count

    locations = []

    # Intro
    intro_duration = max(MIN_SCENE_DURATION, round_half_up(intro_window))
    locations.append(Location(
        location_id=0,
        location_name="Intro",
        scenes=[Scene(
            id=1,
            start_time=0.0,
            duration=intro_duration,
            text_overlay=intro_text,
            text_style=style_for(StyleRole.HOOK),
            description="Hook shot",
        )],
    ))
    cursor = intro_duration

    # Content items
    for i in range(item_count):
        n = i + 1
        text, own_duration = items[i] if i < len(items) else ("", None)
        share = own_duration if own_duration is not None else time_per_item
        duration = max(MIN_SCENE_DURATION, round_half_up(share, 1))

        display_name = strip_ordinal(text) or f"Location {n}"
        locations.append(Location(
            location_id=n,
            location_name=display_name,
            scenes=[Scene(
                id=n * 10 + 1,
                start_time=cursor,
                duration=duration,
                text_overlay=f"{n}. {display_name}",
                text_style=style_for(StyleRole.NUMBERED),
                description=f"Shot of {display_name}",
            )],
        ))
        cursor = round_time(cursor + duration)

    # Outro absorbs the rounding remainder.
    outro_duration = max(MIN_SCENE_DURATION, round_time(total - cursor))
    locations.append(Location(
        location_id=item_count + 1,
        location_name="Outro",
        scenes=[Scene(
            id=OUTRO_SCENE_ID,
            start_time=cursor,
            duration=outro_duration,
            text_overlay=outro_text or DEFAULT_OUTRO_TEXT,
            text_style=style_for(StyleRole.CTA),
            description="Call to action",
        )],
    ))

    return Template(
        id=template_id or f"tmpl_{uuid.uuid4().hex[:12]}",
        type="reel",
        locations=locations,
        intro_text=intro_text,
        outro_text=outro_text,
    )
