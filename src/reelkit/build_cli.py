"""CLI for template building — item list in, timed reel template out.

Usage:
    reelkit build --manifest timing.yaml --output template.json
    reelkit build --items "Praia da Marinha" "Navagio" "Maya Bay" \
        --duration 30 --intro "Top 3 beaches" --output template.yaml
"""

import argparse

from .manifest import load_timing_manifest
from .template import save_template
from .timing import build_template


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Build a timed reel template from content items.",
    )
    parser.add_argument(
        "--manifest", default=None,
        help="Path to timing YAML manifest",
    )
    parser.add_argument(
        "--items", nargs="+", default=None,
        help="Content item texts (instead of --manifest)",
    )
    parser.add_argument(
        "--duration", type=float, default=None,
        help="Target total duration in seconds (default 30)",
    )
    parser.add_argument("--intro", default=None, help="Hook text for the intro scene")
    parser.add_argument("--outro", default=None, help="Call-to-action text for the outro")
    parser.add_argument("--id", default=None, help="Template id (generated if omitted)")
    parser.add_argument(
        "--output", required=True,
        help="Output template path (.json, .yaml or .yml)",
    )
    parsed = parser.parse_args(args)

    if parsed.manifest is not None and parsed.items is not None:
        parser.error("Use either --manifest or --items, not both")
    if parsed.manifest is None and parsed.items is None:
        parser.error("Specify --manifest or --items")

    if parsed.manifest is not None:
        config = load_timing_manifest(parsed.manifest)
    else:
        config = {
            "items": [{"text": t} for t in parsed.items],
            "total_duration": None,
            "intro_text": None,
            "outro_text": None,
            "template_id": None,
        }

    # Command-line flags override the manifest.
    if parsed.duration is not None:
        config["total_duration"] = parsed.duration
    if parsed.intro is not None:
        config["intro_text"] = parsed.intro
    if parsed.outro is not None:
        config["outro_text"] = parsed.outro
    if parsed.id is not None:
        config["template_id"] = parsed.id

    template = build_template(
        config["items"],
        config["total_duration"],
        intro_text=config["intro_text"],
        outro_text=config["outro_text"],
        template_id=config["template_id"],
    )
    save_template(template, parsed.output)

    print(f"Template {template.id}: {template.total_duration:.1f}s, "
          f"{len(template.locations)} locations")
    for location, scene in template.iter_scenes():
        label = scene.text_overlay or "(no text)"
        print(f"  {scene.start_time:6.2f}s +{scene.duration:5.2f}s  {location.location_name}: {label}")
    print(f"Done: {parsed.output}")


if __name__ == "__main__":
    main()
