"""
Desktop Audio Feed

Captures system audio (a loopback / monitor device) with sounddevice and writes
it into the analysis tap, so the detectors can run against whatever the
desktop is playing.
"""

import time
import numpy as np # type: ignore
import sounddevice as sd # type: ignore
from threading import Event

class DesktopAudioFeed:
    """sounddevice input stream writing into an AnalysisTap"""

    def __init__(self, tap, device=None, channels: int = 1, block_seconds: float = 0.1):
        """
        Initialize the feed

        Args:
            tap: AnalysisTap receiving the samples; its sample_rate is used for capture
            device: sounddevice input device (index or name), None for the default
            channels: Captured channels, mixed down to mono by the tap
            block_seconds: Callback block length
        """
        self.tap = tap
        self.device = device
        self.channels = channels
        self.blocksize = max(1, int(tap.sample_rate * block_seconds))
        self.stop_event = Event()
        self.stop_event.set()
        self.blocks_received = 0
        self.last_status_log = 0

    def audio_callback(self, indata, frames, timestamp, status):
        """Push incoming audio into the tap"""
        try:
            if status and time.time() - self.last_status_log > 5:
                print(f"[TAP] Audio status: {status}")
                self.last_status_log = time.time()

            if self.stop_event.is_set():
                return

            new_audio = np.asarray(indata, dtype=np.float32)
            if self.channels == 1:
                new_audio = np.squeeze(new_audio, axis=-1) if new_audio.ndim > 1 else new_audio

            self.tap.write(new_audio)
            self.blocks_received += 1
        except Exception as e:
            print(f"[TAP] Audio callback error: {e}")

    def run(self):
        """Capture until stop() is called. Blocks; run it on its own thread."""
        self.stop_event.clear()
        try:
            with sd.InputStream(
                samplerate=self.tap.sample_rate,
                channels=self.channels,
                device=self.device,
                callback=self.audio_callback,
                blocksize=self.blocksize
            ):
                print("[TAP] Listening to desktop audio...")

                while not self.stop_event.is_set():
                    time.sleep(0.1)

        except Exception as e:
            print(f"[TAP] Error in audio stream: {e}")
        finally:
            self.stop_event.set()

    def stop(self):
        self.stop_event.set()

    @property
    def is_running(self) -> bool:
        return not self.stop_event.is_set()
