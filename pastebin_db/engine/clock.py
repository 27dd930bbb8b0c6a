import threading
import time
from typing import Callable


class MonotonicClock:
    """
    Nanosecond wall clock that never goes backwards.

    Readings are the larger of the source time and the previous reading, so a
    system clock step back never produces an older timestamp.
    """

    def __init__(self, source: Callable[[], int] = time.time_ns):
        self._source = source
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, self._source())
            return self._last
