"""
Named, cancellable timer tasks

Each component owns one TaskScheduler and registers its periodic checks and
timeouts under fixed names. Scheduling a name that is already pending replaces
it, so a component can never end up with two timers for the same check.
"""

import time
import threading
from typing import Callable, Dict, List

class TaskScheduler:
    """Runs named one-shot and repeating tasks on threading.Timer workers"""

    def __init__(self, name: str = "scheduler"):
        self.name = name
        self._timers: Dict[str, threading.Timer] = {}
        self._tokens: Dict[str, object] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        """Monotonic clock shared by everything using this scheduler"""
        return time.monotonic()

    def call_later(self, name: str, delay: float, callback: Callable[[], None]):
        """Run callback once after delay seconds, replacing any pending task with the same name"""
        token = object()
        with self._lock:
            self._cancel_locked(name)
            timer = threading.Timer(max(0.0, delay), self._fire, args=(name, token, callback, None))
            timer.daemon = True
            self._timers[name] = timer
            self._tokens[name] = token
            timer.start()

    def call_every(self, name: str, interval: float, callback: Callable[[], None]):
        """Run callback every interval seconds until cancelled"""
        token = object()
        with self._lock:
            self._cancel_locked(name)
            self._tokens[name] = token
            self._arm_locked(name, token, callback, interval)

    def cancel(self, name: str):
        """Cancel a task by name. Unknown or already-cancelled names are ignored."""
        with self._lock:
            self._cancel_locked(name)

    def cancel_all(self):
        """Cancel every pending task"""
        with self._lock:
            for name in list(self._timers):
                self._cancel_locked(name)

    def is_scheduled(self, name: str) -> bool:
        with self._lock:
            return name in self._tokens

    def active_tasks(self) -> List[str]:
        with self._lock:
            return sorted(self._tokens)

    def _arm_locked(self, name, token, callback, interval):
        timer = threading.Timer(interval, self._fire, args=(name, token, callback, interval))
        timer.daemon = True
        self._timers[name] = timer
        timer.start()

    def _cancel_locked(self, name):
        timer = self._timers.pop(name, None)
        self._tokens.pop(name, None)
        if timer is not None:
            timer.cancel()

    def _fire(self, name, token, callback, interval):
        with self._lock:
            # A cancelled or replaced task must not run
            if self._tokens.get(name) is not token:
                return
            if interval is None:
                self._timers.pop(name, None)
                self._tokens.pop(name, None)

        try:
            callback()
        except Exception as e:
            print(f"[SCHEDULER] Task '{name}' failed: {e}")
        finally:
            if interval is not None:
                with self._lock:
                    if self._tokens.get(name) is token:
                        self._arm_locked(name, token, callback, interval)
