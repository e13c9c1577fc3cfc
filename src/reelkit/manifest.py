"""Manifest loaders — YAML front doors for the build and render CLIs.

Both manifests follow the same ${var} path resolution: a `paths:` block
defines variables, any path field may reference them.

Timing manifest (reelkit build):
  duration: 30
  intro: "Top 5 hidden beaches"
  outro: "Follow for more!"      # optional
  id: beaches-reel               # optional
  items:
    - "1. Praia da Marinha"
    - text: "Navagio"
      duration: 6

Render manifest (reelkit render):
  video:                          # optional, see RenderSettings
    width: 1080
    height: 1920
    fps: 30
  paths:
    clips: "/data/clips"
  template: "${clips}/template.json"
  clips:
    - location: 0
      scene: 1
      path: "${clips}/hook.mp4"
      duration: 4.2               # optional, as reported by the uploader
      trim:                       # optional, camelCase like the template
        inTime: 1.0
        outTime: 3.0
        cropScale: 1.5
"""

from pathlib import Path

import yaml

from .common import resolve_path_vars
from .settings import RenderSettings
from .template import TrimData


def _read_yaml(manifest_path: str | Path, label: str) -> dict:
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"{label} manifest: expected a mapping at the top level")
    return raw


def load_timing_manifest(manifest_path: str | Path) -> dict:
    """Load a timing manifest into build_template() arguments.

    Returns:
        Dict with keys items, total_duration, intro_text, outro_text,
        template_id.

    Raises:
        ValueError: Missing items or a malformed item entry.
    """
    raw = _read_yaml(manifest_path, "Timing")

    if "items" not in raw:
        raise ValueError("Timing manifest: missing required 'items' field")
    if not isinstance(raw["items"], list):
        raise ValueError("Timing manifest: 'items' must be a list")

    items = []
    for i, item in enumerate(raw["items"]):
        if isinstance(item, str):
            items.append({"text": item})
        elif isinstance(item, dict):
            if "text" not in item:
                raise ValueError(f"Item {i}: missing required field 'text'")
            items.append({"text": str(item["text"]), "duration": item.get("duration")})
        else:
            raise ValueError(f"Item {i}: expected a string or mapping, got {type(item).__name__}")

    return {
        "items": items,
        "total_duration": raw.get("duration"),
        "intro_text": raw.get("intro"),
        "outro_text": raw.get("outro"),
        "template_id": str(raw["id"]) if raw.get("id") is not None else None,
    }


def load_render_manifest(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize a render manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Build RenderSettings from the `video:` block.
      3. Resolve ${path} variables in template and clip paths.
      4. Validate each clip entry (location, scene, path, trim).
      5. Check for duplicate (location, scene) bindings.

    Args:
        manifest_path: Path to the YAML render manifest.

    Returns:
        Dict with settings (RenderSettings), template (str path) and
        clips (list of {location, scene, path, duration, trim}).

    Raises:
        ValueError: Missing/invalid fields.
    """
    raw = _read_yaml(manifest_path, "Render")

    if "template" not in raw:
        raise ValueError("Render manifest: missing required 'template' field")
    if "clips" not in raw:
        raise ValueError("Render manifest: missing required 'clips' field")

    settings = RenderSettings.from_dict(raw.get("video"))
    paths = raw.get("paths", {})
    template = resolve_path_vars(str(raw["template"]), paths)

    clips = []
    seen = set()
    for i, entry in enumerate(raw["clips"]):
        for field_name in ("location", "scene", "path"):
            if field_name not in entry:
                raise ValueError(f"Clip {i}: missing required field '{field_name}'")

        key = (int(entry["location"]), int(entry["scene"]))
        if key in seen:
            raise ValueError(
                f"Clip {i}: location {key[0]} scene {key[1]} is bound twice"
            )
        seen.add(key)

        duration = entry.get("duration")
        if duration is not None:
            duration = float(duration)
            if duration <= 0:
                raise ValueError(f"Clip {i}: duration must be > 0, got {duration}")

        trim = None
        if entry.get("trim") is not None:
            try:
                trim = TrimData.from_dict(entry["trim"])
            except (KeyError, ValueError) as exc:
                raise ValueError(f"Clip {i}: invalid trim: {exc}") from exc

        clips.append({
            "location": key[0],
            "scene": key[1],
            "path": resolve_path_vars(str(entry["path"]), paths),
            "duration": duration,
            "trim": trim,
        })

    return {"settings": settings, "template": template, "clips": clips}


def validate_render_paths(config: dict) -> None:
    """Check that the template and every clip file exist on disk.

    Raises:
        FileNotFoundError: If any referenced file is missing.
    """
    if not Path(config["template"]).exists():
        raise FileNotFoundError(f"Template not found: {config['template']}")
    for i, clip in enumerate(config["clips"]):
        if not Path(clip["path"]).exists():
            raise FileNotFoundError(f"Clip {i}: file not found: {clip['path']}")
