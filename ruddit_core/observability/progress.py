"""Terminal progress indicator for long-running query runs.

Runs on a daemon thread and only writes spinner frames to a stream.
It shares no data with the pipeline; stop() joins the thread so nothing
is written after a run returns.

Usage:
    with ProgressIndicator("Searching r/rust"):
        run = await orchestrator.run_query(...)
"""

import itertools
import sys
import threading
from typing import Optional, TextIO


FRAMES = ("|", "/", "-", "\\")


class ProgressIndicator:
    """Spinner drawn on a background thread."""

    def __init__(
        self,
        message: str = "Working",
        stream: Optional[TextIO] = None,
        interval: float = 0.1,
    ):
        self.message = message
        self.stream = stream if stream is not None else sys.stderr
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._spin, name="ruddit-progress", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the spinner and wait for the thread to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self.stream.write("\r" + " " * (len(self.message) + 2) + "\r")
        self.stream.flush()

    def _spin(self) -> None:
        for frame in itertools.cycle(FRAMES):
            if self._stop_event.is_set():
                break
            self.stream.write(f"\r{self.message} {frame}")
            self.stream.flush()
            self._stop_event.wait(self.interval)

    def __enter__(self) -> "ProgressIndicator":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
