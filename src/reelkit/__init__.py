"""reelkit — template-driven vertical video rendering.

Turn a short vertical video into a reusable template (timed scenes with
text overlays) and re-render that template with clips the user supplies.
Templates are plain JSON/YAML documents; renders are driven by YAML
manifests.
"""
