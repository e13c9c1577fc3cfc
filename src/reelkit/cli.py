"""CLI for rendering — template + user clips into the final reel.

Two-step workflow:
  1. Build a timed template from a list of items (reelkit build).
  2. Shoot/collect one clip per scene, list them in a render manifest
     and render them with this CLI.

Usage:
    python -m reelkit.cli \
        --manifest render-manifest.yaml \
        --output final.mp4
"""

import argparse
import logging
from pathlib import Path

from .errors import RenderError
from .manifest import load_render_manifest, validate_render_paths
from .pipeline import ClipSource, RenderPipeline
from .progress import CallbackSink, ProgressEvent
from .template import load_template


def _print_event(event: ProgressEvent) -> None:
    print(f"  [{event.percent:3d}%] {event.message}")


def render(manifest_path: str | Path, output_path: str | Path) -> Path:
    """Render the video described by a render manifest to output_path."""
    config = load_render_manifest(manifest_path)
    validate_render_paths(config)

    template = load_template(config["template"])
    known = set(template.scene_keys())
    clips = {}
    for i, entry in enumerate(config["clips"]):
        key = (entry["location"], entry["scene"])
        if key not in known:
            raise ValueError(
                f"Clip {i}: location {key[0]} scene {key[1]} "
                f"is not in template {template.id}"
            )
        template.bind_clip(entry["location"], entry["scene"], trim_data=entry["trim"])
        clips[key] = ClipSource.from_path(
            entry["path"], duration=entry["duration"],
        )

    settings = config["settings"]
    print(f"Template: {template.id} ({template.total_duration:.1f}s, "
          f"{len(template.scene_keys())} scenes)")
    print(f"Output: {settings.width}x{settings.height} @ {settings.fps}fps")

    pipeline = RenderPipeline(settings=settings)
    with CallbackSink(_print_event) as sink:
        result = pipeline.render(template, clips, progress=sink)

    saved = result.save(output_path)
    print(f"\nDone: {saved} ({result.duration:.2f}s)")
    return saved


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Render CLI — fill a reel template with clips and render it.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to YAML render manifest",
    )
    parser.add_argument(
        "--output",
        help="Output mp4 path (required unless --validate)",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Validate manifest only — check paths, don't render",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log pipeline stages and ffmpeg steps",
    )
    parsed = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if parsed.validate:
        config = load_render_manifest(parsed.manifest)
        validate_render_paths(config)
        print(f"Render manifest valid: {len(config['clips'])} clips")
        for c in config["clips"]:
            trim = c["trim"]
            window = f" [{trim.in_time}-{trim.out_time}s]" if trim else ""
            print(f"  location {c['location']} scene {c['scene']}: {c['path']}{window}")
        print("All paths verified.")
        return

    if not parsed.output:
        parser.error("--output is required (unless using --validate)")

    try:
        render(parsed.manifest, parsed.output)
    except RenderError as exc:
        print(f"\nRender failed [{exc.reason}]: {exc}")
        raise SystemExit(1) from exc
    except ValueError as exc:
        print(f"\nInvalid render manifest: {exc}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
