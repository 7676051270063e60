"""
Crossfade Audio Mixer

Moves the audible gain between the primary stream and a backup stream with a
stepped ramp. Only one fade runs at a time; requests made while a fade is in
flight are dropped.
"""

import time
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .player import StreamPlayer

class FadeDirection(Enum):
    TO_BACKUP = "to_backup"
    TO_PRIMARY = "to_primary"

@dataclass
class CrossfadeSession:
    """State of the fade currently in flight"""
    direction: FadeDirection
    locked: bool = True
    progress_ratio: float = 0.0


class CrossfadeMixer:
    """Gain-ramped switch between a primary and a backup output"""

    def __init__(self,
                 primary: StreamPlayer,
                 backup: StreamPlayer,
                 is_ad_skipping: Callable[[], bool],
                 duration: float = 1.5,
                 steps: int = 30,
                 volume: float = 0.75,
                 monitoring_enabled: bool = False,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the mixer

        Args:
            primary: Output playing the station being monitored
            backup: Output playing the substitute station
            is_ad_skipping: Current ad-skip decision, re-checked after every step
            duration: Fade length in seconds
            steps: Number of gain steps per fade
            volume: Target gain for the audible side (0-1)
            monitoring_enabled: Keep the primary playing (muted) while on backup
            sleep: Wait function between steps
        """
        self.primary = primary
        self.backup = backup
        self.is_ad_skipping = is_ad_skipping
        self.duration = duration
        self.steps = max(1, int(steps))
        self.volume = max(0.0, min(1.0, volume))
        self.monitoring_enabled = monitoring_enabled
        self._sleep = sleep

        self._lock = threading.Lock()
        self.session: Optional[CrossfadeSession] = None
        self.on_backup = False
        self.failed = False

    @property
    def is_locked(self) -> bool:
        return self._lock.locked()

    @property
    def audible_side(self) -> str:
        return "backup" if self.on_backup else "primary"

    def set_volume(self, volume: float):
        """Change the target gain; applied immediately when no fade is running"""
        self.volume = max(0.0, min(1.0, volume))
        if self._lock.acquire(blocking=False):
            try:
                self._pin(self.on_backup)
            finally:
                self._lock.release()

    def crossfade_to(self, to_backup: bool, backup_url: Optional[str] = None) -> bool:
        """
        Fade to the backup (or back to the primary)

        Args:
            to_backup: True to fade to the backup output
            backup_url: Source to load into the backup before fading to it

        Returns:
            False if another fade was already running, True otherwise
        """
        if not self._lock.acquire(blocking=False):
            print("[MIXER] Crossfade already in progress, skipping...")
            return False

        direction = FadeDirection.TO_BACKUP if to_backup else FadeDirection.TO_PRIMARY
        self.session = CrossfadeSession(direction=direction)
        self.failed = False
        try:
            if to_backup:
                self._fade_to_backup(backup_url)
            else:
                self._fade_to_primary()
        except Exception as e:
            # Fail open: a broken fade settles on the primary
            print(f"[MIXER] Crossfade error: {e}")
            self.failed = True
            try:
                self._pin(False)
            except Exception as pin_error:
                print(f"[MIXER] Could not settle gains: {pin_error}")
        finally:
            self.session = None
            self._lock.release()
        return True

    def _ramp(self, to_backup: bool):
        interval = self.duration / self.steps
        target = self.volume
        for i in range(1, self.steps + 1):
            ratio = i / self.steps
            if to_backup:
                self.primary.volume = target * (1 - ratio)
                self.backup.volume = target * ratio
            else:
                self.backup.volume = target * (1 - ratio)
                self.primary.volume = target * ratio
            self.session.progress_ratio = ratio
            self._sleep(interval)

            # The decision that started this fade flipped: the next fade corrects it
            if self.is_ad_skipping() != to_backup:
                print(f"[MIXER] Ad state changed mid-fade at {ratio:.0%}, aborting ramp")
                return False
        return True

    def _fade_to_backup(self, backup_url: Optional[str]):
        if backup_url:
            self.backup.set_source(backup_url)
        self.backup.play()

        self._ramp(to_backup=True)

        # The primary keeps running muted so the analysis tap still hears it
        if not self.monitoring_enabled:
            self.primary.pause()

        self._pin(True)
        print("[MIXER] Crossfade complete: now playing backup"
              + (" (primary monitoring)" if self.monitoring_enabled else ""))

    def _fade_to_primary(self):
        self.primary.play()

        self._ramp(to_backup=False)

        self.backup.release()
        self._pin(False)
        print("[MIXER] Crossfade complete: now playing primary")

    def reset(self) -> bool:
        """
        Jump straight back to the primary and release the backup (station change)

        Returns:
            False if a fade is running; that fade settles the gains instead
        """
        if not self._lock.acquire(blocking=False):
            return False
        try:
            self.backup.release()
            self._pin(False)
            self.failed = False
        finally:
            self._lock.release()
        return True

    def _pin(self, on_backup: bool):
        """Exact final gains, no rounding drift"""
        if on_backup:
            self.backup.volume = self.volume
            self.primary.volume = 0.0
        else:
            self.primary.volume = self.volume
            self.backup.volume = 0.0
        self.on_backup = on_backup

    def get_status(self) -> dict:
        session = self.session
        return {
            'audible': self.audible_side,
            'fading': session is not None,
            'direction': session.direction.value if session else None,
            'progress': session.progress_ratio if session else None,
            'volume': self.volume,
            'monitoring': self.monitoring_enabled,
        }
