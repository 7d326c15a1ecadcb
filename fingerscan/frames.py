"""Frame buffering for fingerscan

- FrameBuffer: bounded, timestamp-ordered ring of recent preview frames
- CollectionWindow: minimum-duration timer started when a finger appears

The camera thread pushes frames while the analysis thread takes snapshots, so
every operation on the buffer holds a lock.
"""

from __future__ import annotations
from collections import deque
import threading
import time
from typing import Callable, Deque, Optional, Tuple

from fingerscan.config import COLLECTION_WINDOW_SECONDS, FRAME_BUFFER_CAPACITY
from fingerscan.exceptions import FrameOrderError
from fingerscan.models import Frame


class FrameBuffer:
    """Fixed-capacity ring buffer of frames in timestamp order.

    Pushing beyond capacity evicts the oldest frame. A frame older than the
    newest buffered frame is rejected, so snapshots are always ordered.

    Args:
        capacity: Maximum number of frames kept (default 10)
    """

    def __init__(self, capacity: int = None) -> None:
        if capacity is None:
            capacity = FRAME_BUFFER_CAPACITY
        if capacity < 1:
            raise ValueError(f"Capacity must be >= 1, got {capacity}")
        self._frames: Deque[Frame] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._frames.maxlen

    def push(self, frame: Frame) -> None:
        """Append a frame, evicting the oldest one at capacity.

        Raises:
            FrameOrderError: If the frame is older than the newest buffered frame
        """
        with self._lock:
            if self._frames and frame.timestamp < self._frames[-1].timestamp:
                raise FrameOrderError(
                    f"Frame at t={frame.timestamp} is older than newest frame "
                    f"at t={self._frames[-1].timestamp}"
                )
            self._frames.append(frame)

    def snapshot(self) -> Tuple[Frame, ...]:
        """Immutable copy of the buffered frames, oldest first."""
        with self._lock:
            return tuple(self._frames)

    def clear(self) -> None:
        with self._lock:
            self._frames.clear()

    def span(self) -> float:
        """Seconds between the oldest and newest buffered frame."""
        with self._lock:
            if len(self._frames) < 2:
                return 0.0
            return self._frames[-1].timestamp - self._frames[0].timestamp

    def __len__(self) -> int:
        with self._lock:
            return len(self._frames)


class CollectionWindow:
    """Tracks how long frames have been collected since a finger appeared.

    Liveness analysis needs at least ``min_duration`` seconds of frames; the
    window is started by the first positive finger detection and reset when the
    finger is lost or the capture completes.

    Args:
        min_duration: Required collection time in seconds (default 1.5)
        clock: Monotonic time source (default ``time.monotonic``)
    """

    def __init__(self, min_duration: float = None,
                 clock: Callable[[], float] = time.monotonic) -> None:
        if min_duration is None:
            min_duration = COLLECTION_WINDOW_SECONDS
        self.min_duration = min_duration
        self._clock = clock
        self._started: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._started is not None

    def trigger(self) -> None:
        """Start the window (no-op while already running)."""
        if self._started is None:
            self._started = self._clock()

    def reset(self) -> None:
        self._started = None

    def elapsed(self) -> float:
        if self._started is None:
            return 0.0
        return self._clock() - self._started

    def is_ready(self) -> bool:
        """True once ``min_duration`` has passed since the window started."""
        return self.running and self.elapsed() >= self.min_duration
