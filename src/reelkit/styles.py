"""Text styles for scene overlays.

A TextStyle is an immutable record serialized with the camelCase field
names used by stored template documents. The built-in styles are keyed
by a closed StyleRole enum, so a misspelled role fails loudly instead of
producing an unstyled scene.
"""

import dataclasses
from dataclasses import dataclass
from enum import Enum

from .common import parse_css_color, parse_text_shadow
from .errors import ValidationError


VALID_POSITIONS = {"top", "center", "bottom"}

VALID_ALIGNMENTS = {"left", "center", "right"}

VALID_EMOJI_POSITIONS = {"before", "after", "both"}

LOCATION_PIN = "📍"


@dataclass(frozen=True)
class TextStyle:
    font_family: str = "Inter"
    font_size: int = 24
    font_weight: str = "700"
    color: str = "#FFFFFF"
    background_color: str | None = None
    text_shadow: str | None = None
    has_emoji: bool = False
    emoji: str | None = None
    emoji_position: str | None = None
    position: str = "center"
    alignment: str = "center"

    def __post_init__(self):
        if self.position not in VALID_POSITIONS:
            raise ValidationError(
                f"Invalid text position '{self.position}'. "
                f"Valid: {sorted(VALID_POSITIONS)}"
            )
        if self.alignment not in VALID_ALIGNMENTS:
            raise ValidationError(
                f"Invalid text alignment '{self.alignment}'. "
                f"Valid: {sorted(VALID_ALIGNMENTS)}"
            )
        if (
            self.emoji_position is not None
            and self.emoji_position not in VALID_EMOJI_POSITIONS
        ):
            raise ValidationError(
                f"Invalid emoji position '{self.emoji_position}'. "
                f"Valid: {sorted(VALID_EMOJI_POSITIONS)}"
            )
        if self.font_size <= 0:
            raise ValidationError(f"Font size must be > 0, got {self.font_size}")

        for name, value in (("color", self.color), ("backgroundColor", self.background_color)):
            if value is None:
                continue
            try:
                parse_css_color(value)
            except (AttributeError, TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid {name} '{value}': {exc}") from exc
        if self.text_shadow is not None and not self.shadow_disabled:
            try:
                parse_text_shadow(self.text_shadow)
            except (AttributeError, TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid textShadow '{self.text_shadow}'") from exc

    @property
    def shadow_disabled(self) -> bool:
        """CSS `text-shadow: none` turns the shadow off entirely."""
        return (
            isinstance(self.text_shadow, str)
            and self.text_shadow.strip().lower() == "none"
        )

    def to_dict(self) -> dict:
        data = {
            "fontFamily": self.font_family,
            "fontSize": self.font_size,
            "fontWeight": self.font_weight,
            "color": self.color,
            "hasEmoji": self.has_emoji,
            "position": self.position,
            "alignment": self.alignment,
        }
        if self.background_color is not None:
            data["backgroundColor"] = self.background_color
        if self.text_shadow is not None:
            data["textShadow"] = self.text_shadow
        if self.emoji is not None:
            data["emoji"] = self.emoji
        if self.emoji_position is not None:
            data["emojiPosition"] = self.emoji_position
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TextStyle":
        return cls(
            font_family=data.get("fontFamily", "Inter"),
            font_size=int(data.get("fontSize", 24)),
            font_weight=str(data.get("fontWeight", "700")),
            color=data.get("color", "#FFFFFF"),
            background_color=data.get("backgroundColor"),
            text_shadow=data.get("textShadow"),
            has_emoji=bool(data.get("hasEmoji", False)),
            emoji=data.get("emoji"),
            emoji_position=data.get("emojiPosition"),
            position=data.get("position", "center"),
            alignment=data.get("alignment", "center"),
        )


class StyleRole(Enum):
    HOOK = "hook"
    NUMBERED = "numbered"
    CTA = "cta"


STYLE_TABLE = {
    StyleRole.HOOK: TextStyle(
        font_family="Montserrat",
        font_size=26,
        font_weight="800",
        color="#FFFFFF",
        text_shadow="2px 2px 6px rgba(0,0,0,0.9)",
        has_emoji=True,
        emoji="✨",
        emoji_position="both",
        position="center",
        alignment="center",
    ),
    StyleRole.NUMBERED: TextStyle(
        font_family="Inter",
        font_size=24,
        font_weight="700",
        color="#FFFFFF",
        text_shadow="1px 1px 3px rgba(0,0,0,0.9)",
        has_emoji=False,
        position="top",
        alignment="left",
    ),
    StyleRole.CTA: TextStyle(
        font_family="Poppins",
        font_size=20,
        font_weight="600",
        color="#FFFFFF",
        has_emoji=True,
        emoji="👆",
        emoji_position="after",
        position="center",
        alignment="center",
    ),
}


def style_for(role: StyleRole) -> TextStyle:
    """Return the built-in style for a role.

    Numbered scenes get the location pin prefixed automatically.
    """
    style = STYLE_TABLE[role]
    if role is StyleRole.NUMBERED:
        style = dataclasses.replace(
            style, has_emoji=True, emoji=LOCATION_PIN, emoji_position="before",
        )
    return style


def decorate_text(text: str, style: TextStyle | None) -> str:
    """Affix the style's emoji to text according to emoji_position."""
    if style is None or not style.has_emoji or not style.emoji:
        return text
    result = text
    if style.emoji_position in ("before", "both"):
        result = f"{style.emoji} {result}"
    if style.emoji_position in ("after", "both"):
        result = f"{result} {style.emoji}"
    return result
