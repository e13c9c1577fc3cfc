"""Per-render scratch storage.

A RenderWorkspace is a temporary directory owned by exactly one render.
Artifacts are allocated lazily, one file per transform sub-step, and
named after the scene and step that produced them:

  scene-00-source.mp4   raw clip bytes as supplied by the caller
  scene-00-trim.mp4     trimmed window
  scene-00-frame.mp4    framed + normalized
  scene-00-text.mp4     captioned (final normalized clip)
  concat.txt            concat demuxer manifest
  final.mp4             sequencer output

Closing the workspace removes every artifact and the directory itself,
whatever state the render ended in. `history` keeps the names of every
artifact ever allocated, which is what tests inspect.
"""

import logging
import shutil
import tempfile
from pathlib import Path


logger = logging.getLogger(__name__)


class RenderWorkspace:
    def __init__(self, prefix: str = "reelkit-", root: str | Path | None = None):
        self._prefix = prefix
        self._root = str(root) if root is not None else None
        self._tmp: tempfile.TemporaryDirectory | None = None
        self._live: set[Path] = set()
        self.history: list[str] = []

    def __enter__(self) -> "RenderWorkspace":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def path(self) -> Path:
        if self._tmp is None:
            raise RuntimeError("Workspace is not open")
        return Path(self._tmp.name)

    @property
    def is_open(self) -> bool:
        return self._tmp is not None

    @property
    def live(self) -> list[Path]:
        """Artifacts currently on disk, sorted by name."""
        return sorted(self._live)

    def open(self) -> None:
        if self._tmp is None:
            self._tmp = tempfile.TemporaryDirectory(prefix=self._prefix, dir=self._root)
            logger.debug("Opened workspace %s", self._tmp.name)

    def allocate(self, name: str) -> Path:
        """Reserve a path for a new artifact inside the workspace."""
        path = self.path / name
        if path in self._live:
            raise RuntimeError(f"Artifact {name} is already allocated")
        self._live.add(path)
        self.history.append(name)
        return path

    def allocate_step(self, scene_index: int, step: str, suffix: str = ".mp4") -> Path:
        return self.allocate(f"scene-{scene_index:02d}-{step}{suffix}")

    def write_source(self, scene_index: int, data: bytes) -> Path:
        """Materialize a caller's clip bytes as the scene's first artifact."""
        path = self.allocate_step(scene_index, "source")
        path.write_bytes(data)
        return path

    def owns(self, path: Path) -> bool:
        return path in self._live

    def release(self, path: Path) -> None:
        """Delete an artifact that is no longer needed."""
        if path in self._live:
            self._live.discard(path)
            path.unlink(missing_ok=True)

    def close(self) -> None:
        if self._tmp is None:
            return
        for path in list(self._live):
            self.release(path)
        tmp_name = self._tmp.name
        self._tmp.cleanup()
        self._tmp = None
        # cleanup() tolerates files it did not create; make sure nothing survives.
        shutil.rmtree(tmp_name, ignore_errors=True)
        logger.debug("Closed workspace %s", tmp_name)
