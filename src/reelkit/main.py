"""Subcommand dispatcher for reelkit.

Usage:
    reelkit build   --manifest timing.yaml --output template.json
    reelkit render  --manifest render.yaml --output final.mp4
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="reelkit",
        description="Template-driven vertical video rendering.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("build", help="Build a timed reel template from items")
    subparsers.add_parser("render", help="Render a template filled with user clips")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "build":
        from .build_cli import main as build_main
        build_main(remaining)
    elif parsed.command == "render":
        from .cli import main as render_main
        render_main(remaining)


if __name__ == "__main__":
    main()
