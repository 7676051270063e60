"""
Test doubles (fakes, stubs) for Smart Skip tests.

These provide minimal implementations of the scheduler, players, analysis tap
and classifier so the state machines can be driven deterministically, without
real timers, audio devices or model downloads.
"""

import itertools
from typing import Callable, Dict, List, Optional

import numpy as np

from smart_skip.player import PlaybackRejected, StreamPlayer
from smart_skip.speech_music_classifier import ClassifierReading


class ManualScheduler:
    """Virtual-time scheduler. Tasks only run inside advance()."""

    def __init__(self):
        self.time = 0.0
        self._tasks: Dict[str, list] = {}
        self._seq = itertools.count()

    def now(self) -> float:
        return self.time

    def call_later(self, name: str, delay: float, callback: Callable[[], None]):
        self._tasks[name] = [self.time + max(0.0, delay), None, callback, next(self._seq)]

    def call_every(self, name: str, interval: float, callback: Callable[[], None]):
        self._tasks[name] = [self.time + interval, interval, callback, next(self._seq)]

    def cancel(self, name: str):
        self._tasks.pop(name, None)

    def cancel_all(self):
        self._tasks.clear()

    def is_scheduled(self, name: str) -> bool:
        return name in self._tasks

    def active_tasks(self) -> List[str]:
        return sorted(self._tasks)

    def due_at(self, name: str) -> Optional[float]:
        task = self._tasks.get(name)
        return task[0] if task else None

    def advance(self, seconds: float):
        """Move the clock forward, firing due tasks in time order"""
        target = self.time + seconds
        while True:
            due = [(task[0], task[3], name) for name, task in self._tasks.items() if task[0] <= target + 1e-9]
            if not due:
                break
            when, _, name = min(due)
            task = self._tasks[name]
            self.time = max(self.time, when)
            callback = task[2]
            if task[1] is None:
                del self._tasks[name]
            else:
                task[0] = when + task[1]
                task[3] = next(self._seq)
            callback()
        self.time = target


class FakePlayer(StreamPlayer):
    """Records every call; play() can be told to raise."""

    def __init__(self, name: str = "player"):
        self.name = name
        self.volume = 0.0
        self.source: Optional[str] = None
        self.sources: List[Optional[str]] = []
        self.cross_origin_modes: List[Optional[str]] = []
        self.play_calls = 0
        self.pause_calls = 0
        self.playing = False
        self.play_errors: List[Optional[Exception]] = []

    def set_source(self, url):
        self.source = url
        self.sources.append(url)

    def set_cross_origin(self, mode):
        self.cross_origin_modes.append(mode)

    def play(self):
        self.play_calls += 1
        if self.play_errors:
            error = self.play_errors.pop(0)
            if error is not None:
                raise error
        self.playing = True

    def pause(self):
        self.pause_calls += 1
        self.playing = False


def spectrum_with_voice_ratio(ratio: float, bin_count: int = 1024, sample_rate: int = 44100) -> np.ndarray:
    """Magnitude snapshot whose 300-3000 Hz share of total energy is ratio"""
    from smart_skip.spectral_analyzer import band_edges

    bass_end, voice_end = band_edges(sample_rate, bin_count)
    magnitudes = np.zeros(bin_count, dtype=np.float64)
    magnitudes[bass_end:voice_end] = ratio * 1000.0 / (voice_end - bass_end)
    magnitudes[voice_end:] = (1.0 - ratio) * 1000.0 / (bin_count - voice_end)
    return magnitudes


class FakeTap:
    """Analysis tap returning whatever the test put into it"""

    def __init__(self, sample_rate: int = 44100, fft_size: int = 2048):
        self.sample_rate = sample_rate
        self.fft_size = fft_size
        self.frequency = np.zeros(fft_size // 2, dtype=np.float64)
        self.time_domain = np.full(fft_size, 128, dtype=np.uint8)
        self.samples: Optional[np.ndarray] = np.zeros(sample_rate * 2, dtype=np.float32)
        self.reset_calls = 0

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def has_data(self) -> bool:
        return self.samples is not None

    def set_voice_ratio(self, ratio: float):
        self.frequency = spectrum_with_voice_ratio(ratio, self.frequency_bin_count, self.sample_rate)

    def set_silent(self):
        self.time_domain = np.full(self.fft_size, 128, dtype=np.uint8)

    def set_signal(self, peak: int = 160):
        self.time_domain = np.full(self.fft_size, 128, dtype=np.uint8)
        self.time_domain[::2] = peak

    def get_byte_frequency_data(self):
        return self.frequency.copy()

    def get_byte_time_domain_data(self):
        return self.time_domain.copy()

    def capture(self, seconds: float):
        if self.samples is None:
            return None
        return self.samples[:int(self.sample_rate * seconds)].copy()

    def reset(self):
        self.reset_calls += 1


class FakeClassifier:
    """Returns queued readings in order, then the last one forever"""

    def __init__(self, readings: Optional[List] = None):
        self.readings = list(readings or [])
        self.calls = 0

    def classify(self, samples, sample_rate):
        self.calls += 1
        if not self.readings:
            return ClassifierReading(0.0, 0.0, 1.0)
        reading = self.readings.pop(0) if len(self.readings) > 1 else self.readings[0]
        if isinstance(reading, Exception):
            raise reading
        return reading


class RejectingPlayer(FakePlayer):
    """Player whose play() is refused on every stage."""

    def play(self):
        self.play_calls += 1
        raise PlaybackRejected("autoplay blocked")
