"""Template data model — Template → Location → Scene.

Templates are the interchange format between the timing model, the
editor that binds clips, and the render pipeline. They are persisted as
JSON (or YAML) documents with camelCase field names:

  {
    "id": "tmpl_...",
    "type": "reel",
    "totalDuration": 30,
    "locations": [
      {
        "locationId": 0,
        "locationName": "Intro",
        "totalDuration": 2,
        "scenes": [
          {"id": 1, "startTime": 0, "endTime": 2, "duration": 2,
           "textOverlay": "...", "textStyle": {...}, "filled": false,
           "trimData": {"inTime": 0, "outTime": 2, "cropX": 0.5,
                        "cropY": 0.5, "cropScale": 1}}
        ]
      }
    ]
  }

Aggregate durations (Location.totalDuration, Template.totalDuration) are
always computed from the scenes and written out on save; values found in
a loaded document are ignored.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import yaml

from .common import round_time
from .errors import ValidationError
from .styles import TextStyle


VALID_TEMPLATE_TYPES = {"reel", "carousel"}

# Stored endTime may differ from startTime + duration by float noise.
TIME_TOLERANCE = 0.001

_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0", ""}


def _coerce_flag(value, label: str) -> bool:
    """Read a stored boolean; 'false' strings from loose JSON stay False."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValidationError(f"{label} must be a boolean, got {value!r}")


# ── Trim / crop parameters ─────────────────────────────────────────


@dataclass
class TrimData:
    """How a user's source clip maps onto a scene.

    in_time/out_time select the source window in seconds. crop_x/crop_y
    are the normalized origin of the crop window (0 = left/top edge,
    1 = right/bottom edge). crop_scale <= 1 fits the whole frame,
    > 1 zooms in.
    """

    in_time: float
    out_time: float
    crop_x: float = 0.5
    crop_y: float = 0.5
    crop_scale: float = 1.0

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.in_time < 0:
            raise ValidationError(f"Trim inTime must be >= 0, got {self.in_time}")
        if self.in_time >= self.out_time:
            raise ValidationError(
                f"Trim inTime ({self.in_time}) must be < outTime ({self.out_time})"
            )
        for name, value in (("cropX", self.crop_x), ("cropY", self.crop_y)):
            if not 0 <= value <= 1:
                raise ValidationError(f"{name} must be in [0, 1], got {value}")
        if self.crop_scale <= 0:
            raise ValidationError(f"cropScale must be > 0, got {self.crop_scale}")

    @property
    def window(self) -> float:
        return self.out_time - self.in_time

    def to_dict(self) -> dict:
        return {
            "inTime": self.in_time,
            "outTime": self.out_time,
            "cropX": self.crop_x,
            "cropY": self.crop_y,
            "cropScale": self.crop_scale,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrimData":
        try:
            return cls(
                in_time=float(data["inTime"]),
                out_time=float(data["outTime"]),
                crop_x=float(data.get("cropX", 0.5)),
                crop_y=float(data.get("cropY", 0.5)),
                crop_scale=float(data.get("cropScale", 1.0)),
            )
        except KeyError as exc:
            raise ValidationError(f"trimData missing required field {exc}") from exc


# ── Scene ──────────────────────────────────────────────────────────


@dataclass
class Scene:
    id: int
    start_time: float
    duration: float
    text_overlay: str | None = None
    text_style: TextStyle | None = None
    description: str = ""
    filled: bool = False
    trim_data: TrimData | None = None
    thumbnail: str | None = None
    user_video_id: str | None = None
    user_thumbnail: str | None = None

    def __post_init__(self):
        self.start_time = round_time(self.start_time)
        self.duration = round_time(self.duration)
        if self.start_time < 0:
            raise ValidationError(
                f"Scene {self.id}: startTime must be >= 0, got {self.start_time}"
            )
        if self.duration <= 0:
            raise ValidationError(
                f"Scene {self.id}: duration must be > 0, got {self.duration}"
            )

    @property
    def end_time(self) -> float:
        return round_time(self.start_time + self.duration)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "textOverlay": self.text_overlay,
            "description": self.description,
            "filled": self.filled,
        }
        if self.text_style is not None:
            data["textStyle"] = self.text_style.to_dict()
        if self.trim_data is not None:
            data["trimData"] = self.trim_data.to_dict()
        for key, value in (
            ("thumbnail", self.thumbnail),
            ("userVideoId", self.user_video_id),
            ("userThumbnail", self.user_thumbnail),
        ):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Scene":
        if "id" not in data:
            raise ValidationError("Scene: missing required field 'id'")
        if "startTime" not in data:
            raise ValidationError(f"Scene {data['id']}: missing required field 'startTime'")

        if "duration" not in data and "endTime" not in data:
            raise ValidationError(
                f"Scene {data['id']}: needs 'duration' or 'endTime'"
            )
        try:
            start = float(data["startTime"])
            end = float(data["endTime"]) if "endTime" in data else None
            duration = float(data["duration"]) if "duration" in data else end - start
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"Scene {data['id']}: startTime/endTime/duration must be numbers"
            ) from exc

        if end is not None:
            expected_end = start + duration
            if abs(end - expected_end) > TIME_TOLERANCE:
                raise ValidationError(
                    f"Scene {data['id']}: endTime ({data['endTime']}) != "
                    f"startTime + duration ({expected_end})"
                )

        style = data.get("textStyle")
        trim = data.get("trimData")
        return cls(
            id=data["id"],
            start_time=start,
            duration=duration,
            text_overlay=data.get("textOverlay"),
            text_style=TextStyle.from_dict(style) if style else None,
            description=data.get("description", ""),
            filled=_coerce_flag(data.get("filled", False), f"Scene {data['id']}: filled"),
            trim_data=TrimData.from_dict(trim) if trim else None,
            thumbnail=data.get("thumbnail"),
            user_video_id=data.get("userVideoId"),
            user_thumbnail=data.get("userThumbnail"),
        )


# ── Location ───────────────────────────────────────────────────────


@dataclass
class Location:
    location_id: int
    location_name: str
    scenes: list[Scene] = field(default_factory=list)

    @property
    def total_duration(self) -> float:
        return round_time(sum(s.duration for s in self.scenes))

    def to_dict(self) -> dict:
        return {
            "locationId": self.location_id,
            "locationName": self.location_name,
            "scenes": [s.to_dict() for s in self.scenes],
            "totalDuration": self.total_duration,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Location":
        if "locationId" not in data:
            raise ValidationError("Location: missing required field 'locationId'")
        scenes = [Scene.from_dict(s) for s in data.get("scenes", [])]
        seen = set()
        for scene in scenes:
            if scene.id in seen:
                raise ValidationError(
                    f"Location {data['locationId']}: duplicate scene id {scene.id}"
                )
            seen.add(scene.id)
        return cls(
            location_id=data["locationId"],
            location_name=data.get("locationName", ""),
            scenes=scenes,
        )


# ── Template ───────────────────────────────────────────────────────


@dataclass
class Template:
    id: str
    type: str = "reel"
    locations: list[Location] = field(default_factory=list)
    intro_text: str | None = None
    outro_text: str | None = None
    video_info: dict | None = None
    slides: list[dict] = field(default_factory=list)
    is_draft: bool = True
    created_at: str | None = None
    updated_at: str | None = None

    def __post_init__(self):
        if self.type not in VALID_TEMPLATE_TYPES:
            raise ValidationError(
                f"Template {self.id}: invalid type '{self.type}'. "
                f"Valid: {sorted(VALID_TEMPLATE_TYPES)}"
            )

    @property
    def total_duration(self) -> float:
        return round_time(sum(loc.total_duration for loc in self.locations))

    # ── Scene access ───────────────────────────────────────────────

    def iter_scenes(self) -> Iterator[tuple[Location, Scene]]:
        """Yield (location, scene) in playback order."""
        for location in self.locations:
            for scene in location.scenes:
                yield location, scene

    def scene_keys(self) -> list[tuple[int, int]]:
        """(location_id, scene_id) for every scene, in playback order."""
        return [(loc.location_id, scene.id) for loc, scene in self.iter_scenes()]

    def find_location(self, location_id: int) -> Location:
        for location in self.locations:
            if location.location_id == location_id:
                return location
        raise KeyError(f"Template {self.id}: no location {location_id}")

    def find_scene(self, location_id: int, scene_id: int) -> Scene:
        for scene in self.find_location(location_id).scenes:
            if scene.id == scene_id:
                return scene
        raise KeyError(f"Template {self.id}: no scene {scene_id} in location {location_id}")

    # ── Structural edits ───────────────────────────────────────────

    def retime(self) -> None:
        """Re-accumulate scene start times left to right from 0."""
        cursor = 0.0
        for _, scene in self.iter_scenes():
            scene.start_time = round_time(cursor)
            cursor = scene.end_time

    def resize_scene(self, location_id: int, scene_id: int, duration: float) -> None:
        if duration <= 0:
            raise ValidationError(f"Scene {scene_id}: duration must be > 0, got {duration}")
        self.find_scene(location_id, scene_id).duration = round_time(duration)
        self.retime()

    def add_scene(self, location_id: int, scene: Scene) -> None:
        location = self.find_location(location_id)
        if any(s.id == scene.id for s in location.scenes):
            raise ValidationError(
                f"Location {location_id}: duplicate scene id {scene.id}"
            )
        location.scenes.append(scene)
        self.retime()

    def bind_clip(
        self,
        location_id: int,
        scene_id: int,
        trim_data: TrimData | None = None,
        user_video_id: str | None = None,
    ) -> Scene:
        """Mark a scene as filled by a user clip."""
        scene = self.find_scene(location_id, scene_id)
        scene.filled = True
        if trim_data is not None:
            scene.trim_data = trim_data
        if user_video_id is not None:
            scene.user_video_id = user_video_id
        return scene

    # ── Serialization ──────────────────────────────────────────────

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "totalDuration": self.total_duration,
            "locations": [loc.to_dict() for loc in self.locations],
            "isDraft": self.is_draft,
        }
        for key, value in (
            ("introText", self.intro_text),
            ("outroText", self.outro_text),
            ("videoInfo", self.video_info),
            ("createdAt", self.created_at),
            ("updatedAt", self.updated_at),
        ):
            if value is not None:
                data[key] = value
        if self.slides:
            data["slides"] = self.slides
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Template":
        if "id" not in data:
            raise ValidationError("Template: missing required field 'id'")
        return cls(
            id=str(data["id"]),
            type=data.get("type", "reel"),
            locations=[Location.from_dict(loc) for loc in data.get("locations", [])],
            intro_text=data.get("introText"),
            outro_text=data.get("outroText"),
            video_info=data.get("videoInfo"),
            slides=list(data.get("slides", [])),
            is_draft=bool(data.get("isDraft", True)),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


# ── Documents on disk ──────────────────────────────────────────────


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in (".yaml", ".yml")


def load_template(path: str | Path) -> Template:
    """Load a template document (.json, .yaml or .yml)."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) if _is_yaml(path) else json.load(f)
    if not isinstance(raw, dict):
        raise ValidationError(f"Template document {path} is not a mapping")
    return Template.from_dict(raw)


def save_template(template: Template, path: str | Path) -> None:
    """Write a template document, stamping createdAt/updatedAt."""
    now = datetime.now(timezone.utc).isoformat()
    template.updated_at = now
    if template.created_at is None:
        template.created_at = now

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        if _is_yaml(path):
            yaml.safe_dump(template.to_dict(), f, sort_keys=False, allow_unicode=True)
        else:
            json.dump(template.to_dict(), f, indent=2, ensure_ascii=False)
