"""
Shared analysis tap

The audio pipeline writes decoded samples in; the spectral check, the
classifier capture and the silence watchdog read snapshots out. Readers always
get copies, so they can poll at any cadence without disturbing each other.
"""

import threading
import numpy as np # type: ignore
from scipy import signal # type: ignore
from typing import Optional

class AnalysisTap:
    """Single-writer ring buffer exposing frequency and time-domain snapshots"""

    def __init__(self,
                 sample_rate: int = 44100,
                 fft_size: int = 2048,
                 buffer_seconds: float = 4.0,
                 min_decibels: float = -100.0,
                 max_decibels: float = -30.0):
        """
        Initialize the tap

        Args:
            sample_rate: Rate of the samples written into the tap (Hz)
            fft_size: Window length for snapshots, yields fft_size // 2 bins
            buffer_seconds: Raw sample history kept for captures
            min_decibels: Level mapped to byte 0 in frequency snapshots
            max_decibels: Level mapped to byte 255 in frequency snapshots
        """
        self.sample_rate = sample_rate
        self.fft_size = fft_size
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self.capacity = max(int(sample_rate * buffer_seconds), fft_size)
        self._buffer = np.zeros(self.capacity, dtype=np.float32)
        self._write_pos = 0
        self._filled = 0
        self._lock = threading.Lock()

        # Blackman window, as used by browser analyser nodes
        self._window = signal.get_window('blackman', fft_size, fftbins=False).astype(np.float32)

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def has_data(self) -> bool:
        with self._lock:
            return self._filled > 0

    def write(self, samples: np.ndarray):
        """Append decoded samples. Multi-channel input is mixed down to mono."""
        data = np.asarray(samples, dtype=np.float32)
        if data.ndim > 1:
            data = data.mean(axis=1)
        data = np.nan_to_num(data, nan=0.0, posinf=0.0, neginf=0.0)

        # Only the newest capacity samples can survive the write
        if len(data) > self.capacity:
            data = data[-self.capacity:]
        count = len(data)
        if count == 0:
            return

        with self._lock:
            end = self._write_pos + count
            if end <= self.capacity:
                self._buffer[self._write_pos:end] = data
            else:
                first = self.capacity - self._write_pos
                self._buffer[self._write_pos:] = data[:first]
                self._buffer[:count - first] = data[first:]
            self._write_pos = end % self.capacity
            self._filled = min(self.capacity, self._filled + count)

    def reset(self):
        """Drop all buffered audio (used on stream change)"""
        with self._lock:
            self._buffer.fill(0.0)
            self._write_pos = 0
            self._filled = 0

    def _latest(self, count: int) -> np.ndarray:
        with self._lock:
            count = min(count, self._filled)
            if count == 0:
                return np.zeros(0, dtype=np.float32)
            start = (self._write_pos - count) % self.capacity
            if start + count <= self.capacity:
                return self._buffer[start:start + count].copy()
            return np.concatenate((self._buffer[start:], self._buffer[:self._write_pos]))

    def _window_samples(self) -> np.ndarray:
        """Latest fft_size samples, zero padded at the front while the buffer fills"""
        samples = self._latest(self.fft_size)
        if len(samples) < self.fft_size:
            samples = np.concatenate((np.zeros(self.fft_size - len(samples), dtype=np.float32), samples))
        return samples

    def get_byte_frequency_data(self) -> np.ndarray:
        """
        Frequency-domain magnitude snapshot

        Returns:
            uint8 array of frequency_bin_count values, decibels scaled between
            min_decibels (0) and max_decibels (255)
        """
        samples = self._window_samples()
        spectrum = np.abs(np.fft.rfft(samples * self._window))[:self.frequency_bin_count] / self.fft_size
        decibels = 20.0 * np.log10(spectrum + 1e-12)
        scaled = 255.0 * (decibels - self.min_decibels) / (self.max_decibels - self.min_decibels)
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def get_byte_time_domain_data(self) -> np.ndarray:
        """
        Time-domain snapshot

        Returns:
            uint8 array of fft_size values centred on 128 (silence)
        """
        samples = self._window_samples()
        return np.clip(128.0 * (1.0 + samples), 0, 255).astype(np.uint8)

    def capture(self, seconds: float) -> Optional[np.ndarray]:
        """
        Raw float capture of the most recent audio

        Args:
            seconds: Requested capture length

        Returns:
            Copy of up to seconds worth of samples, or None if nothing was written yet
        """
        samples = self._latest(int(self.sample_rate * seconds))
        if len(samples) == 0:
            return None
        return samples
