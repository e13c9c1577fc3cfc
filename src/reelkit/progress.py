"""Progress events and the sinks that receive them.

The pipeline pushes ProgressEvent objects into a sink it was handed and
never waits on the receiver:

  NullSink         drops everything (the default)
  ProgressChannel  unbounded queue; the caller drains it when convenient
  CallbackSink     runs a listener on its own thread, so a slow listener
                   falls behind instead of stalling the render

CancelToken is the other half of the caller/pipeline conversation: the
caller sets it from any thread, the pipeline checks it between scenes.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable


logger = logging.getLogger(__name__)


class ProgressStage(Enum):
    INITIALIZING = "initializing"
    PROCESSING = "processing"
    CONCATENATING = "concatenating"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    stage: ProgressStage
    percent: int
    message: str
    current_clip: int | None = None
    total_clips: int | None = None

    def to_dict(self) -> dict:
        data = {
            "stage": self.stage.value,
            "percent": self.percent,
            "message": self.message,
        }
        if self.current_clip is not None:
            data["currentClip"] = self.current_clip
        if self.total_clips is not None:
            data["totalClips"] = self.total_clips
        return data


class NullSink:
    def emit(self, event: ProgressEvent) -> None:
        pass


class ProgressChannel:
    """Queue-backed sink. emit() never blocks."""

    def __init__(self):
        self._queue: queue.SimpleQueue = queue.SimpleQueue()

    def emit(self, event: ProgressEvent) -> None:
        self._queue.put(event)

    def drain(self) -> list[ProgressEvent]:
        """Return all events emitted since the last drain, oldest first."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


_STOP = object()


class CallbackSink:
    """Deliver events to `callback` on a dedicated daemon thread.

    Use as a context manager (or call close()) so queued events are
    flushed before the caller moves on.
    """

    def __init__(self, callback: Callable[[ProgressEvent], None]):
        self._callback = callback
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._thread = threading.Thread(
            target=self._deliver, name="reelkit-progress", daemon=True,
        )
        self._thread.start()

    def __enter__(self) -> "CallbackSink":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def emit(self, event: ProgressEvent) -> None:
        self._queue.put(event)

    def close(self, timeout: float | None = 5.0) -> None:
        self._queue.put(_STOP)
        self._thread.join(timeout)

    def _deliver(self) -> None:
        while True:
            event = self._queue.get()
            if event is _STOP:
                return
            try:
                self._callback(event)
            except Exception:
                # A broken listener must not take the delivery thread down.
                logger.exception("Progress listener failed on %s", event)


class CancelToken:
    """Thread-safe cancellation flag."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
