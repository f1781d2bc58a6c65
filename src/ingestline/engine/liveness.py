# src/ingestline/engine/liveness.py
"""Liveness signaling during long-running input processing.

Extracting a single large input can take much longer than the framework's
default liveness timeout. While an input is being processed, a background
thread calls the framework's progress() hook at a fixed interval so the task
is not declared dead.

This is not a correctness mechanism: signaling is independent of whether
processing succeeds. It only has to be started before the slow work and
stopped afterwards on every exit path.

Thread Safety:
    start_signaling()/stop_signaling() are called from the task thread.
    _signal_loop() runs in the signaler thread. The active count is guarded
    by _lock; the loop and the task thread communicate only through _active
    and _shutdown events.
"""

import threading
from collections.abc import Callable

import structlog

from ingestline.contracts.errors import LivenessStateError

logger = structlog.get_logger(__name__)


class LivenessSignaler:
    """Calls a progress hook periodically while signaling is active.

    Starts nest: the loop keeps signaling until every start has a matching
    stop.

    Example:
        signaler = LivenessSignaler(context.progress, interval_seconds=60)
        signaler.start_signaling()
        try:
            slow_extraction()
        finally:
            signaler.stop_signaling()
        ...
        signaler.close()

    Attributes:
        starts: Number of start_signaling() calls
        stops: Number of stop_signaling() calls
        signals: Number of progress() calls made by the loop
    """

    def __init__(self, progress: Callable[[], None], *, interval_seconds: float = 60.0) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._progress = progress
        self._interval = interval_seconds

        self._lock = threading.Lock()
        self._active_count = 0
        self._active = threading.Event()
        self._shutdown = threading.Event()

        self.starts = 0
        self.stops = 0
        self.signals = 0

        # Daemon: a task killed by its framework must not hang on this thread
        self._thread = threading.Thread(target=self._signal_loop, name="liveness-signaler", daemon=True)
        self._thread.start()

    @property
    def active(self) -> bool:
        return self._active.is_set()

    def start_signaling(self) -> None:
        """Begin (or nest) a signaling session."""
        if self._shutdown.is_set():
            raise LivenessStateError("Signaler has been closed")
        with self._lock:
            self._active_count += 1
            self.starts += 1
            self._active.set()

    def stop_signaling(self) -> None:
        """End one signaling session; the loop pauses when none remain.

        Raises:
            LivenessStateError: If called without a matching start
        """
        with self._lock:
            if self._active_count == 0:
                raise LivenessStateError("stop_signaling() called without a matching start_signaling()")
            self._active_count -= 1
            self.stops += 1
            if self._active_count == 0:
                self._active.clear()

    def close(self, timeout: float = 5.0) -> None:
        """Stop the loop thread for good."""
        self._shutdown.set()
        # Wake the loop if it is waiting for a session
        self._active.set()
        self._thread.join(timeout=timeout)

    def _signal_loop(self) -> None:
        while not self._shutdown.is_set():
            self._active.wait()
            if self._shutdown.is_set():
                break
            # Sleep first: short inputs finish without ever signaling
            if self._shutdown.wait(self._interval):
                break
            if not self._active.is_set():
                continue
            try:
                self._progress()
            except Exception as e:
                # Liveness must never kill the task it is keeping alive
                logger.warning("Liveness signal failed", error=str(e), error_type=type(e).__name__)
                continue
            self.signals += 1
