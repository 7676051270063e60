"""
Silence Watchdog

Counts consecutive silent seconds on the analysis tap and asks the owner to
skip once the stream has been dead air for too long.
"""

import threading
from typing import Callable, Optional

import numpy as np

from .scheduler import TaskScheduler

SILENCE_TASK = "silence"


class SilenceWatchdog:
    """Periodic dead-air detector"""

    def __init__(self,
                 tap,
                 on_silence: Callable[[str], None],
                 scheduler: Optional[TaskScheduler] = None,
                 is_connected: Callable[[], bool] = lambda: True,
                 is_suppressed: Callable[[], bool] = lambda: False,
                 threshold: int = 10,
                 noise_floor: int = 2,
                 interval: float = 1.0,
                 debug: bool = False):
        """
        Initialize the silence watchdog

        Args:
            tap: Analysis tap providing time-domain bytes
            on_silence: Skip request, called with "silence"
            scheduler: Owner of the periodic check
            is_connected: Checks are skipped until the stream has connected
            is_suppressed: Checks are skipped while the primary is deliberately muted
            threshold: Consecutive silent checks before a skip
            noise_floor: Largest deviation from 128 still treated as silence
            interval: Seconds between checks
            debug: Enable detailed debug output
        """
        self.tap = tap
        self.on_silence = on_silence
        self.scheduler = scheduler or TaskScheduler("silence")
        self.is_connected = is_connected
        self.is_suppressed = is_suppressed
        self._threshold = max(1, int(threshold))
        self.noise_floor = noise_floor
        self.interval = interval
        self.debug = debug

        self.silence_count = 0
        self._lock = threading.Lock()

    @property
    def threshold(self) -> int:
        return self._threshold

    @threshold.setter
    def threshold(self, value: int):
        self._threshold = max(1, int(value))

    @property
    def is_running(self) -> bool:
        return self.scheduler.is_scheduled(SILENCE_TASK)

    def start(self):
        self.reset()
        self.scheduler.call_every(SILENCE_TASK, self.interval, self.check)

    def stop(self):
        self.scheduler.cancel(SILENCE_TASK)
        self.reset()

    def reset(self):
        with self._lock:
            self.silence_count = 0

    def is_silent(self, samples: np.ndarray) -> bool:
        """True when no byte sample deviates from the 128 midpoint by more than the noise floor"""
        if samples is None or len(samples) == 0:
            return True
        deviation = np.abs(samples.astype(np.int16) - 128)
        return not np.any(deviation > self.noise_floor)

    def check(self):
        """One silence tick"""
        if not self.is_connected() or self.is_suppressed():
            return

        samples = self.tap.get_byte_time_domain_data()
        with self._lock:
            if not self.is_silent(samples):
                if self.silence_count and self.debug:
                    print(f"[SILENCE] Signal back after {self.silence_count}s")
                self.silence_count = 0
                return

            self.silence_count += 1
            if self.debug:
                print(f"[SILENCE] Silent for {self.silence_count}s (limit {self._threshold}s)")
            if self.silence_count < self._threshold:
                return
            self.silence_count = 0

        print(f"[SILENCE] No audio for {self._threshold}s, requesting skip")
        try:
            self.on_silence("silence")
        except Exception as e:
            print(f"[SILENCE] Skip callback error: {e}")
