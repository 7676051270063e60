"""
Smart Skip Radio

Owner of one listening session. Wires the ad detection watchdog, the crossfade
mixer, the connection manager and the silence watchdog around a primary and a
backup player:

- AD_DETECTED (from the watchdog or a manual signal) fades to a random backup
- AD_FINISHED fades back to the primary
- connection failures, stalls and dead air skip to the next station
"""

import random
import threading
import time
from typing import Callable, List, Optional, Sequence, Union

from .ad_watchdog import AdDetected, AdDetectionWatchdog, AdFinished, WatchdogEvent
from .analysis_tap import AnalysisTap
from .config import Config
from .connection_manager import StreamConnectionManager
from .crossfade_mixer import CrossfadeMixer
from .player import PlayerEvent, Station, StreamPlayer
from .scheduler import TaskScheduler
from .silence_watchdog import SilenceWatchdog
from .url_sanitizer import sanitize_stream_url

SIGNAL_STATUSES = ('DISCONNECTED', 'CONNECTING', 'CONNECTED', 'ERROR')
SKIP_TASK = "skip"

def _start_thread(target: Callable[[], None]):
    threading.Thread(target=target, daemon=True).start()


class SmartSkipRadio:
    """Player controller with ad-aware crossfading"""

    def __init__(self,
                 primary: StreamPlayer,
                 backup: StreamPlayer,
                 config: Optional[Config] = None,
                 tap: Optional[AnalysisTap] = None,
                 classifier=None,
                 backup_pool: Optional[Callable[[], Sequence[Station]]] = None,
                 scheduler: Optional[TaskScheduler] = None,
                 on_skip: Optional[Callable[[str], None]] = None,
                 on_ad_event: Optional[Callable[[WatchdogEvent], None]] = None,
                 fade_runner: Callable[[Callable[[], None]], None] = _start_thread,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        """
        Initialize the radio

        Args:
            primary: Player for the selected station
            backup: Player for the substitute station
            config: Tunables, a default Config is created when omitted
            tap: Analysis tap fed by the primary player's decoded audio
            classifier: Speech/music classifier for the watchdog (optional)
            backup_pool: Returns stations eligible as backups; defaults to the station list
            scheduler: Timer owner shared by every component
            on_skip: Notified with the reason whenever the radio skips on its own
            on_ad_event: Notified with every AD_DETECTED / AD_FINISHED that is acted on
            fade_runner: Runs a crossfade job, a daemon thread by default
            sleep: Wait function between crossfade steps
            rng: Random source for backup selection
        """
        self.config = config or Config()
        self.scheduler = scheduler or TaskScheduler("radio")
        self.tap = tap or AnalysisTap(sample_rate=self.config.FS,
                                      fft_size=self.config.FFT_SIZE,
                                      buffer_seconds=self.config.TAP_BUFFER_SECONDS,
                                      min_decibels=self.config.MIN_DECIBELS,
                                      max_decibels=self.config.MAX_DECIBELS)
        self.primary = primary
        self.backup = backup
        self.backup_pool = backup_pool
        self.on_skip = on_skip
        self.on_ad_event = on_ad_event
        self._fade_runner = fade_runner
        self._rng = rng or random.Random()

        self.stations: List[Station] = []
        self.current_index = -1
        self.current_station: Optional[Station] = None
        self.backup_station: Optional[Station] = None
        self.is_playing = False
        self.is_ad_skipping = False
        self.smart_skip_enabled = False
        self.signal_status = 'DISCONNECTED'
        self.volume = self.config.DEFAULT_VOLUME
        self.last_metadata: Optional[str] = None
        self.skip_count = 0
        self._lock = threading.RLock()

        self.watchdog = AdDetectionWatchdog(tap=self.tap,
                                            classifier=classifier,
                                            scheduler=self.scheduler,
                                            **self.config.get_detection_settings())
        self.mixer = CrossfadeMixer(primary, backup,
                                    is_ad_skipping=lambda: self.is_ad_skipping,
                                    monitoring_enabled=self.smart_skip_enabled,
                                    sleep=sleep,
                                    **self.config.get_crossfade_settings())
        self.connection = StreamConnectionManager(primary,
                                                  scheduler=self.scheduler,
                                                  on_connected=self._on_connected,
                                                  on_failed=self._request_skip,
                                                  **self.config.get_connection_settings())
        self.silence = SilenceWatchdog(self.tap,
                                       on_silence=self._request_skip,
                                       scheduler=self.scheduler,
                                       is_connected=lambda: self.connection.is_connected,
                                       is_suppressed=lambda: self.is_ad_skipping,
                                       threshold=self._silence_threshold(),
                                       noise_floor=self.config.SILENCE_NOISE_FLOOR,
                                       interval=self.config.SILENCE_CHECK_INTERVAL,
                                       debug=self.config.DEBUG_CONNECTION)
        self.mixer.set_volume(self.volume / 100)

    def _silence_threshold(self) -> int:
        if self.smart_skip_enabled:
            return self.config.SILENCE_SKIP_SECONDS_SMART
        return self.config.SILENCE_SKIP_SECONDS

    # ------------------------------------------------------------------
    # Station navigation
    # ------------------------------------------------------------------

    def set_stations(self, stations: Sequence[Station]):
        """Replace the station list used by next/prev"""
        with self._lock:
            self.stations = list(stations)
            current = self.current_station
            self.current_index = -1
            if current is not None:
                for i, station in enumerate(self.stations):
                    if station.key == current.key:
                        self.current_index = i
                        break

    def play_station(self, station: Union[Station, int]):
        """Switch the primary to a station and start every monitor for it"""
        with self._lock:
            if isinstance(station, int):
                if not 0 <= station < len(self.stations):
                    raise IndexError(f"No station at index {station}")
                self.current_index = station
                station = self.stations[station]
            else:
                self.current_index = next(
                    (i for i, s in enumerate(self.stations) if s.key == station.key), -1)

            print(f"[RADIO] Playing: {station.name}")
            self.current_station = station
            self.is_playing = True
            self.last_metadata = None
            was_skipping = self._end_skip_locked()
            self.silence.threshold = self._silence_threshold()
            smart_skip = self.smart_skip_enabled

        self.scheduler.cancel(SKIP_TASK)
        self.watchdog.stop()
        self.silence.stop()
        self.tap.reset()
        if (was_skipping or self.mixer.on_backup) and not self.mixer.reset():
            self._sync_mixer()

        self.connection.connect(station.url)
        self.silence.start()
        if smart_skip:
            self.watchdog.start(station.name, self.handle_ad_event)

    def next_station(self, reason: str = "manual") -> Optional[Station]:
        """Advance to the next station, wrapping around. Ends any active skip."""
        with self._lock:
            if not self.stations:
                print("[RADIO] No stations to skip to")
                return None
            self.current_index = (self.current_index + 1) % len(self.stations)
            station = self.stations[self.current_index]
        if reason != "manual":
            print(f"[RADIO] Skipping to next station ({reason})")
        self.play_station(station)
        return station

    def prev_station(self) -> Optional[Station]:
        """Go back one station, wrapping around"""
        with self._lock:
            if not self.stations:
                return None
            if self.current_index < 0:
                self.current_index = 0
            self.current_index = (self.current_index - 1) % len(self.stations)
            station = self.stations[self.current_index]
        self.play_station(station)
        return station

    def stop(self):
        """Stop playback and every monitor. Safe to call repeatedly."""
        with self._lock:
            if self.is_playing:
                print("[RADIO] Stopping playback")
            self.is_playing = False
            self._end_skip_locked()

        self.scheduler.cancel(SKIP_TASK)
        self.watchdog.stop()
        self.connection.cancel()
        self.silence.stop()
        self.mixer.reset()
        try:
            self.primary.release()
        except Exception as e:
            print(f"[RADIO] Error releasing primary player: {e}")

    def _end_skip_locked(self) -> bool:
        was_skipping = self.is_ad_skipping
        self.is_ad_skipping = False
        self.backup_station = None
        return was_skipping

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_smart_skip_enabled(self, enabled: bool):
        """Toggle ad detection. Turning it off mid-skip returns to the primary."""
        with self._lock:
            self.smart_skip_enabled = enabled
            self.mixer.monitoring_enabled = enabled
            self.silence.threshold = self._silence_threshold()
            was_skipping = self.is_ad_skipping and not enabled
            if was_skipping:
                self._end_skip_locked()
            station = self.current_station if self.is_playing else None

        print(f"[RADIO] Smart skip {'enabled' if enabled else 'disabled'}")
        if enabled and station is not None:
            self.watchdog.start(station.name, self.handle_ad_event)
            self.watchdog.update_metadata(self.last_metadata)
        else:
            self.watchdog.stop()
        if was_skipping:
            self._sync_mixer()

    def set_volume(self, volume: float):
        """Set the listening volume (0-100)"""
        self.volume = max(0, min(100, volume))
        self.mixer.set_volume(self.volume / 100)

    # ------------------------------------------------------------------
    # Inputs from collaborators
    # ------------------------------------------------------------------

    def handle_player_event(self, event: PlayerEvent, payload=None):
        """Receive a notification from the primary player"""
        if event == PlayerEvent.METADATA:
            if payload:
                self.last_metadata = str(payload)
                self.watchdog.update_metadata(self.last_metadata)
            return
        self.connection.handle_event(event)

    def handle_signal(self, name: str, payload=None):
        """
        Receive a manual ad signal

        Args:
            name: "AD_DETECTED" or "AD_FINISHED"
            payload: Channel payload, only logged
        """
        if name == AdDetected.name:
            event = AdDetected(self.watchdog.get_state())
        elif name == AdFinished.name:
            event = AdFinished(self.watchdog.get_state())
        else:
            print(f"[RADIO] Ignoring unknown signal: {name}")
            return
        print(f"[RADIO] Manual signal received: {name}" + (f" {payload}" if payload else ""))
        self.handle_ad_event(event)

    def set_signal_status(self, status: str):
        """Record the signal channel status"""
        status = status.upper()
        if status not in SIGNAL_STATUSES:
            raise ValueError(f"Unknown signal channel status: {status}")
        if status != self.signal_status:
            print(f"[RADIO] Signal channel: {status}")
        self.signal_status = status

    def handle_ad_event(self, event: WatchdogEvent):
        """Act on an AD_DETECTED / AD_FINISHED transition. Duplicates are ignored."""
        with self._lock:
            if isinstance(event, AdDetected):
                if self.is_ad_skipping or not self.smart_skip_enabled or not self.is_playing:
                    return
                backup = self._choose_backup()
                if backup is None:
                    print("[RADIO] Ad detected but no backup station is available")
                    return
                print(f"[RADIO] Ad detected, crossfading to backup: {backup.name}")
                self.backup_station = backup
                self.is_ad_skipping = True
            elif isinstance(event, AdFinished):
                if not self.is_ad_skipping:
                    return
                print("[RADIO] Ad finished, crossfading back to primary")
                self._end_skip_locked()
            else:
                return

        if self.on_ad_event:
            try:
                self.on_ad_event(event)
            except Exception as e:
                print(f"[RADIO] Ad event callback error: {e}")
        self._sync_mixer()

    def _choose_backup(self) -> Optional[Station]:
        pool = self.backup_pool() if self.backup_pool else self.stations
        excluded = {s.key for s in (self.current_station, self.backup_station) if s is not None}
        candidates = [s for s in pool if s.key not in excluded]
        if not candidates:
            return None
        return self._rng.choice(candidates)

    # ------------------------------------------------------------------
    # Crossfade and skips
    # ------------------------------------------------------------------

    def _sync_mixer(self):
        self._fade_runner(self._reconcile_mixer)

    def _reconcile_mixer(self):
        """Fade until the audible side matches the current skip decision"""
        while True:
            with self._lock:
                desired = self.is_ad_skipping
                backup = self.backup_station
            if self.mixer.on_backup == desired:
                return

            backup_url = sanitize_stream_url(backup.url) if (desired and backup) else None
            if not self.mixer.crossfade_to(desired, backup_url):
                # The fade already running re-checks when it finishes
                return

            if self.mixer.failed:
                with self._lock:
                    if self.is_ad_skipping:
                        print("[RADIO] Crossfade failed, staying on primary")
                    self._end_skip_locked()
                return

    def _on_connected(self, stream_url: str):
        self.silence.reset()
        if self.current_station:
            print(f"[RADIO] Connected: {self.current_station.name}")

    def _request_skip(self, reason: str):
        """
        Queue a skip to the next station

        Skips never run inline: the move happens on the scheduler after
        SKIP_DELAY. Requests made while a skip is already pending are dropped.
        """
        with self._lock:
            if not self.is_playing or self.scheduler.is_scheduled(SKIP_TASK):
                return
            self.skip_count += 1
        if self.on_skip:
            try:
                self.on_skip(reason)
            except Exception as e:
                print(f"[RADIO] Skip callback error: {e}")
        self.scheduler.call_later(SKIP_TASK, self.config.SKIP_DELAY,
                                  lambda: self._perform_skip(reason))

    def _perform_skip(self, reason: str):
        with self._lock:
            if not self.is_playing:
                return
        self.next_station(reason=reason)

    def get_status(self) -> dict:
        """Diagnostics snapshot"""
        state = self.watchdog.get_state()
        return {
            'station': self.current_station.name if self.current_station else None,
            'playing': self.is_playing,
            'smart_skip': self.smart_skip_enabled,
            'confidence': state.confidence_score,
            'in_ad_break': state.in_ad_break,
            'ad_skipping': self.is_ad_skipping,
            'backup_station': self.backup_station.name if self.backup_station else None,
            'signal_status': self.signal_status,
            'connection_stage': self.connection.stage.name if self.connection.stage else None,
            'connected': self.connection.is_connected,
            'silence_count': self.silence.silence_count,
            'mixer': self.mixer.get_status(),
            'volume': self.volume,
            'skips': self.skip_count,
        }
