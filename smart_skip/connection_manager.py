"""
Stream Connection Manager

Negotiates a working access mode for the primary stream. Each attempt walks
three stages, from the most analysable to the most permissive:

1. PROXIED             - same-origin relay, anonymous cross-origin mode
2. DIRECT_ANONYMOUS    - origin URL, anonymous cross-origin mode
3. DIRECT_UNRESTRICTED - origin URL, no cross-origin mode (the analysis tap
                         may hear nothing if the origin disallows it)

A stage escalates on its own timer or immediately when playback is rejected.
A hard ceiling from the first stage bounds the whole negotiation. Once
connected, stalls get a grace period before the owner is asked to skip.
"""

import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from .player import PlaybackRejected, PlayerEvent, StreamPlayer
from .scheduler import TaskScheduler
from .url_sanitizer import build_relay_url, sanitize_stream_url

STAGE_TASK = "stage"
HARD_TIMEOUT_TASK = "hard_timeout"
STALL_TASK = "stall"

class ConnectionStage(IntEnum):
    PROXIED = 1
    DIRECT_ANONYMOUS = 2
    DIRECT_UNRESTRICTED = 3

@dataclass
class ConnectionAttempt:
    """One negotiation for one stream URL"""
    stream_url: str
    stage: ConnectionStage
    stage_started_at: float
    has_connected_ever: bool = False


class StreamConnectionManager:
    """Staged connection negotiation with escalating timeouts"""

    def __init__(self,
                 player: StreamPlayer,
                 scheduler: Optional[TaskScheduler] = None,
                 on_connected: Optional[Callable[[str], None]] = None,
                 on_failed: Optional[Callable[[str], None]] = None,
                 relay_url: str = "/api/proxy",
                 stage_timeout: float = 3.0,
                 hard_timeout: float = 7.0,
                 stall_timeout: float = 5.0,
                 debug: bool = False):
        """
        Initialize the manager

        Args:
            player: Primary stream player
            scheduler: Owner of the stage, ceiling and stall timers
            on_connected: Called with the stream URL once playback is ready
            on_failed: Called with a reason ("unavailable", "timeout", "stall"); the owner should skip
            relay_url: Same-origin relay endpoint for the proxied stage
            stage_timeout: Seconds each stage gets before escalating
            hard_timeout: Ceiling from the first stage until a forced failure
            stall_timeout: Grace period for a stalled, already-connected stream
            debug: Enable detailed debug output
        """
        self.player = player
        self.scheduler = scheduler or TaskScheduler("connection")
        self.on_connected = on_connected
        self.on_failed = on_failed
        self.relay_url = relay_url
        self.stage_timeout = stage_timeout
        self.hard_timeout = hard_timeout
        self.stall_timeout = stall_timeout
        self.debug = debug

        self.attempt: Optional[ConnectionAttempt] = None
        self._lock = threading.RLock()

    def _log_debug(self, message: str):
        if self.debug:
            print(f"[CONNECT] {message}")

    @property
    def is_connected(self) -> bool:
        attempt = self.attempt
        return attempt is not None and attempt.has_connected_ever

    @property
    def is_connecting(self) -> bool:
        attempt = self.attempt
        return attempt is not None and not attempt.has_connected_ever

    @property
    def stage(self) -> Optional[ConnectionStage]:
        attempt = self.attempt
        return attempt.stage if attempt else None

    def connect(self, stream_url: str):
        """Start negotiating a new stream, abandoning any previous attempt"""
        notices = []
        with self._lock:
            self._clear_timers()
            attempt = ConnectionAttempt(
                stream_url=stream_url,
                stage=ConnectionStage.PROXIED,
                stage_started_at=self.scheduler.now(),
            )
            self.attempt = attempt

            # Ceiling counts from the first stage only
            self.scheduler.call_later(HARD_TIMEOUT_TASK, self.hard_timeout,
                                      lambda: self._on_hard_timeout(attempt))
            self._enter_stage(attempt, ConnectionStage.PROXIED, notices)
        self._notify(notices)

    def cancel(self):
        """Drop the current attempt and every timer. Safe to call repeatedly."""
        with self._lock:
            self._clear_timers()
            self.attempt = None

    def handle_event(self, event: PlayerEvent):
        """Feed a player notification into the negotiation"""
        notices = []
        with self._lock:
            attempt = self.attempt
            if attempt is None:
                return

            if event in (PlayerEvent.READY, PlayerEvent.PLAYING):
                self._clear_timers()
                if not attempt.has_connected_ever:
                    attempt.has_connected_ever = True
                    print(f"[CONNECT] Stream ready at stage {attempt.stage.name}")
                    notices.append(('connected', attempt.stream_url))

            elif event in (PlayerEvent.STALLED, PlayerEvent.WAITING):
                if attempt.has_connected_ever:
                    self._start_stall_timer(attempt)

            elif event == PlayerEvent.ERROR:
                if attempt.has_connected_ever:
                    self._start_stall_timer(attempt)
                else:
                    print(f"[CONNECT] Stage {attempt.stage.name} reported an error")
                    self._escalate(attempt, attempt.stage, notices)
        self._notify(notices)

    def _clear_timers(self):
        self.scheduler.cancel(STAGE_TASK)
        self.scheduler.cancel(HARD_TIMEOUT_TASK)
        self.scheduler.cancel(STALL_TASK)

    def _enter_stage(self, attempt: ConnectionAttempt, stage: ConnectionStage, notices: list):
        attempt.stage = stage
        attempt.stage_started_at = self.scheduler.now()

        if stage == ConnectionStage.PROXIED:
            self.player.set_cross_origin("anonymous")
            url = build_relay_url(attempt.stream_url, self.relay_url)
            print("[CONNECT] Stage 1: Attempting proxied anonymous connect...")
        elif stage == ConnectionStage.DIRECT_ANONYMOUS:
            self.player.set_cross_origin("anonymous")
            url = sanitize_stream_url(attempt.stream_url)
            print("[CONNECT] Stage 2: Attempting direct anonymous connect...")
        else:
            self.player.set_cross_origin(None)
            url = sanitize_stream_url(attempt.stream_url)
            print("[CONNECT] Stage 3: Attempting unrestricted connect...")

        self._log_debug(f"Source: {url}")
        self.scheduler.call_later(STAGE_TASK, self.stage_timeout,
                                  lambda: self._on_stage_timeout(attempt, stage))

        self.player.set_source(url)
        try:
            self.player.play()
        except PlaybackRejected as e:
            print(f"[CONNECT] Stage {stage.value} playback rejected: {e.reason}")
            self._escalate(attempt, stage, notices)
        except Exception as e:
            # Anything else gets the rest of the stage timer to recover
            print(f"[CONNECT] Stage {stage.value} play error: {e}")

    def _escalate(self, attempt: ConnectionAttempt, from_stage: ConnectionStage, notices: list):
        if attempt is not self.attempt or attempt.has_connected_ever or attempt.stage != from_stage:
            return
        if from_stage < ConnectionStage.DIRECT_UNRESTRICTED:
            self._enter_stage(attempt, ConnectionStage(from_stage + 1), notices)
        else:
            print("[CONNECT] All connection stages failed")
            self._fail(attempt, 'unavailable', notices)

    def _fail(self, attempt: ConnectionAttempt, reason: str, notices: list):
        self._clear_timers()
        self.attempt = None
        try:
            self.player.release()
        except Exception as e:
            print(f"[CONNECT] Error releasing player: {e}")
        notices.append(('failed', reason))

    def _start_stall_timer(self, attempt: ConnectionAttempt):
        if self.scheduler.is_scheduled(STALL_TASK):
            return
        self._log_debug(f"Stream stalled, skipping in {self.stall_timeout}s unless it resumes")
        self.scheduler.call_later(STALL_TASK, self.stall_timeout,
                                  lambda: self._on_stall_timeout(attempt))

    def _on_stage_timeout(self, attempt: ConnectionAttempt, stage: ConnectionStage):
        notices = []
        with self._lock:
            if attempt is self.attempt and not attempt.has_connected_ever:
                print(f"[CONNECT] Stage {stage.value} timed out")
                self._escalate(attempt, stage, notices)
        self._notify(notices)

    def _on_hard_timeout(self, attempt: ConnectionAttempt):
        notices = []
        with self._lock:
            if attempt is self.attempt and not attempt.has_connected_ever:
                print(f"[CONNECT] Hard timeout ({self.hard_timeout:.0f}s) reached, giving up")
                self._fail(attempt, 'timeout', notices)
        self._notify(notices)

    def _on_stall_timeout(self, attempt: ConnectionAttempt):
        notices = []
        with self._lock:
            if attempt is self.attempt:
                print("[CONNECT] Stream stalled, giving up")
                self._fail(attempt, 'stall', notices)
        self._notify(notices)

    def _notify(self, notices: list):
        for kind, value in notices:
            callback = self.on_connected if kind == 'connected' else self.on_failed
            if callback is None:
                continue
            try:
                callback(value)
            except Exception as e:
                print(f"[CONNECT] Callback error: {e}")

    def get_status(self) -> dict:
        attempt = self.attempt
        return {
            'url': attempt.stream_url if attempt else None,
            'stage': attempt.stage.name if attempt else None,
            'connected': self.is_connected,
            'stalled': self.scheduler.is_scheduled(STALL_TASK),
        }
