"""Consecutive infra-failure counter shared by the engine and the reporter."""

import threading


class FailureCounter:
    """
    Counts consecutive prober/provider failures.

    Incremented on every infra failure, reset on every probe that returned an
    answer. The reporter only shows infra failures once the count reaches the
    configured threshold.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def increment(self) -> int:
        with self._lock:
            self._count += 1
            return self._count

    def reset(self) -> None:
        with self._lock:
            self._count = 0

    def reached(self, threshold: int) -> bool:
        return self.count >= threshold
