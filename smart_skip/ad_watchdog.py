"""
Ad Detection Watchdog

Fuses three independently timed signals into a single AD/MUSIC decision:
1. Stream metadata heuristics (keywords, station name, format, staleness)
2. Spectral voice-band ratio from the analysis tap
3. Periodic speech/music classifier readings

The fused confidence score rises quickly on evidence but only commits to an ad
break after a debounce; it leaves the ad break as soon as the score falls
below the finish threshold.
"""

import re
import threading
from collections import deque
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Union

from .scheduler import TaskScheduler
from .spectral_analyzer import analyze_spectrum
from .speech_music_classifier import NEUTRAL_READING

METADATA_TASK = "metadata"
SPECTRAL_TASK = "spectral"
CLASSIFIER_TASK = "classifier"
DEBOUNCE_TASK = "debounce"

STANDARD_FORMAT = re.compile(r'^.+\s*[-–—]\s*.+$')

DEFAULT_KEYWORDS = [
    'commercial', 'break', 'ad ', 'ads ', 'sponsor', 'jingle', 'promo',
    'advertisement', 'brought to you', 'message from', 'word from',
    'traffic', 'weather', 'news update', 'station id'
]

DEFAULT_WEIGHTS = {
    'suspicious_keyword': 40,
    'station_name': 30,
    'non_standard_format': 20,
    'static_metadata': 20,
    'voice_content': 50,
    'speech_first_hit': 20,
    'speech_confirmed': 45,
}

@dataclass
class DetectionState:
    """Everything the watchdog knows about the current stream"""
    active: bool = False
    confidence_score: float = 0.0
    in_ad_break: bool = False
    last_metadata: Optional[str] = None
    metadata_changed_at: float = 0.0
    ever_received_metadata: bool = False
    voice_ratio: float = 0.0
    baseline_voice_ratio: float = 0.3  # Typical music has ~30% mid-band energy
    current_rms: float = 0.0
    voice_spike_started_at: Optional[float] = None
    voice_dip_started_at: Optional[float] = None
    classifier_speech_prob: float = 0.0
    classifier_music_prob: float = 1.0
    speech_hit_count: int = 0
    music_hit_count: int = 0
    started_at: float = 0.0

@dataclass(frozen=True)
class AdDetected:
    state: DetectionState
    name = "AD_DETECTED"

@dataclass(frozen=True)
class AdFinished:
    state: DetectionState
    name = "AD_FINISHED"

WatchdogEvent = Union[AdDetected, AdFinished]


class AdDetectionWatchdog:
    """Confidence-fusion state machine driving AD_DETECTED / AD_FINISHED"""

    def __init__(self,
                 tap=None,
                 classifier=None,
                 scheduler: Optional[TaskScheduler] = None,
                 metadata_interval: float = 2.0,
                 spectral_interval: float = 0.5,
                 classifier_interval: float = 15.0,
                 classifier_ad_interval: float = 10.0,
                 capture_seconds: float = 2.0,
                 debounce: float = 2.0,
                 skip_threshold: float = 60,
                 finish_threshold: float = 20,
                 metadata_decay: float = 0.7,
                 static_metadata_timeout: float = 180.0,
                 grace_period: float = 0.0,
                 voice_threshold: float = 0.50,
                 voice_spike_seconds: float = 1.5,
                 voice_dip_tolerance: float = 5.0,
                 classifier_confidence: float = 0.85,
                 speech_to_music_ratio: float = 1.5,
                 keywords: Optional[List[str]] = None,
                 weights: Optional[dict] = None,
                 debug: bool = False):
        self.tap = tap
        self.classifier = classifier
        self.scheduler = scheduler or TaskScheduler("watchdog")

        self.metadata_interval = metadata_interval
        self.spectral_interval = spectral_interval
        self.classifier_interval = classifier_interval
        self.classifier_ad_interval = classifier_ad_interval
        self.capture_seconds = capture_seconds
        self.debounce = debounce
        self.skip_threshold = skip_threshold
        self.finish_threshold = finish_threshold
        self.metadata_decay = metadata_decay
        self.static_metadata_timeout = static_metadata_timeout
        self.grace_period = grace_period
        self.voice_threshold = voice_threshold
        self.voice_spike_seconds = voice_spike_seconds
        self.voice_dip_tolerance = voice_dip_tolerance
        self.classifier_confidence = classifier_confidence
        self.speech_to_music_ratio = speech_to_music_ratio
        self.keywords = [kw.lower() for kw in (keywords or DEFAULT_KEYWORDS)]
        self.weights = dict(DEFAULT_WEIGHTS)
        self.weights.update(weights or {})
        self.debug = debug

        self.state = DetectionState(metadata_changed_at=self.scheduler.now())
        self.station_label = ''
        self._handler: Optional[Callable[[WatchdogEvent], None]] = None
        self._rms_history = deque(maxlen=20)
        self._readings_seen = 0
        self._lock = threading.RLock()

    def _log_debug(self, message: str):
        """Log debug message if debug mode is enabled"""
        if self.debug:
            print(f"[WATCHDOG] {message}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, station_label: str, handler: Callable[[WatchdogEvent], None]):
        """
        Start monitoring a station

        Args:
            station_label: Station name, used to spot self-referential announcements
            handler: Receives AdDetected / AdFinished events
        """
        if self.state.active:
            print("[WATCHDOG] Already running, restarting...")
            self.stop()

        print(f"[WATCHDOG] Starting automatic ad detection for: {station_label}")
        now = self.scheduler.now()
        with self._lock:
            self.station_label = station_label or ''
            self._handler = handler
            self.state = replace(self.state,
                                 active=True,
                                 in_ad_break=False,
                                 confidence_score=0.0,
                                 started_at=now,
                                 voice_spike_started_at=None,
                                 voice_dip_started_at=None,
                                 classifier_speech_prob=0.0,
                                 classifier_music_prob=1.0,
                                 speech_hit_count=0,
                                 music_hit_count=0,
                                 last_metadata=None,
                                 metadata_changed_at=now,
                                 ever_received_metadata=False)
            self._rms_history.clear()
            self._readings_seen = 0

        self.scheduler.call_every(METADATA_TASK, self.metadata_interval, self.check_metadata)
        self.scheduler.call_every(SPECTRAL_TASK, self.spectral_interval, self.check_spectrum)
        self._schedule_classifier()

    def stop(self):
        """Stop monitoring and cancel every pending check. Safe to call repeatedly."""
        if self.state.active:
            print("[WATCHDOG] Stopping ad detection")
        with self._lock:
            self.state.active = False
            self.scheduler.cancel(METADATA_TASK)
            self.scheduler.cancel(SPECTRAL_TASK)
            self.scheduler.cancel(CLASSIFIER_TASK)
            self.scheduler.cancel(DEBOUNCE_TASK)

    def update_metadata(self, metadata: Optional[str]):
        """Store new stream text. Empty and repeated values are ignored."""
        with self._lock:
            if metadata and metadata != self.state.last_metadata:
                self._log_debug(f"Metadata updated: {metadata}")
                self.state.last_metadata = metadata
                self.state.metadata_changed_at = self.scheduler.now()
                self.state.ever_received_metadata = True

    def get_state(self) -> DetectionState:
        """Snapshot copy of the current detection state"""
        with self._lock:
            return replace(self.state)

    def _in_grace_period(self) -> bool:
        return self.scheduler.now() - self.state.started_at < self.grace_period

    # ------------------------------------------------------------------
    # Metadata heuristics
    # ------------------------------------------------------------------

    def score_metadata(self, metadata: Optional[str]) -> float:
        """
        Heuristic ad score for a metadata string (static-metadata factor excluded)

        Args:
            metadata: Current stream text, may be None

        Returns:
            Sum of the matching keyword, station name and format weights
        """
        if not metadata:
            return 0

        score = 0
        lower_meta = metadata.lower()
        if any(kw in lower_meta for kw in self.keywords):
            score += self.weights['suspicious_keyword']
            self._log_debug(f"Suspicious keyword detected in: {metadata}")

        if self.station_label and self.station_label.lower() in lower_meta:
            score += self.weights['station_name']
            self._log_debug("Metadata matches station name")

        if not STANDARD_FORMAT.match(metadata):
            score += self.weights['non_standard_format']
            self._log_debug(f"Non-standard metadata format: {metadata}")

        return score

    def check_metadata(self):
        """Periodic metadata check"""
        events = []
        with self._lock:
            if not self.state.active or self._in_grace_period():
                return

            score = self.score_metadata(self.state.last_metadata)

            # Stations that never send metadata must not look static
            if self.state.ever_received_metadata:
                unchanged_for = self.scheduler.now() - self.state.metadata_changed_at
                if unchanged_for > self.static_metadata_timeout:
                    score += self.weights['static_metadata']
                    self._log_debug(f"Metadata static for {int(unchanged_for // 60)} minutes")

            self._update_confidence(score, 'metadata', events)
        self._emit(events)

    # ------------------------------------------------------------------
    # Spectral heuristics
    # ------------------------------------------------------------------

    def check_spectrum(self):
        """Periodic spectral voice-ratio check"""
        if self.tap is None:
            return

        events = []
        with self._lock:
            if not self.state.active or self._in_grace_period():
                return
            magnitudes = self.tap.get_byte_frequency_data()
            reading = analyze_spectrum(magnitudes, self.tap.sample_rate, self.tap.frequency_bin_count)
            score = self._score_voice_ratio(reading.voice_ratio, reading.rms)
            self._update_confidence(score, 'spectral', events)
        self._emit(events)

    def _score_voice_ratio(self, voice_ratio: float, rms: float) -> float:
        now = self.scheduler.now()
        state = self.state
        state.voice_ratio = voice_ratio
        state.current_rms = rms

        # Baseline only adapts once there is some history, and only on music-like readings
        if self._readings_seen > 10 and voice_ratio < 0.30:
            state.baseline_voice_ratio = state.baseline_voice_ratio * 0.99 + voice_ratio * 0.01
        self._rms_history.append(rms)
        self._readings_seen += 1

        if voice_ratio > self.voice_threshold:
            state.voice_dip_started_at = None
            if state.voice_spike_started_at is None:
                state.voice_spike_started_at = now
                self._log_debug(f"Voice-heavy content detected! Ratio: {voice_ratio * 100:.1f}%")

            duration = now - state.voice_spike_started_at
            if duration >= self.voice_spike_seconds:
                self._log_debug(f"Sustained voice content for {duration:.1f}s")
                return self.weights['voice_content']
            return 0

        # Brief dips inside a spike are tolerated
        if state.voice_spike_started_at is not None:
            if state.voice_dip_started_at is None:
                state.voice_dip_started_at = now
            elif now - state.voice_dip_started_at > self.voice_dip_tolerance:
                self._log_debug("Voice content ended - back to music")
                state.voice_spike_started_at = None
                state.voice_dip_started_at = None
        return 0

    # ------------------------------------------------------------------
    # Classifier heuristics
    # ------------------------------------------------------------------

    def _schedule_classifier(self):
        # Ad breaks are polled faster
        with self._lock:
            if not self.state.active:
                return
            interval = self.classifier_ad_interval if self.state.in_ad_break else self.classifier_interval
            self.scheduler.call_later(CLASSIFIER_TASK, interval, self._run_classifier)

    def _run_classifier(self):
        try:
            self.check_classifier()
        finally:
            self._schedule_classifier()

    def check_classifier(self):
        """Capture a short window and feed the classifier verdict into the score"""
        if not self.state.active or self.tap is None or self.classifier is None:
            return

        samples = self.tap.capture(self.capture_seconds)
        if samples is None:
            return

        # Inference runs outside the lock, it can take a while
        try:
            reading = self.classifier.classify(samples, self.tap.sample_rate)
        except Exception as e:
            print(f"[WATCHDOG] Classifier failed: {e}")
            reading = NEUTRAL_READING

        self.apply_classifier_reading(reading.speech, reading.music)

    def apply_classifier_reading(self, speech: float, music: float):
        """
        Apply one classifier reading

        Args:
            speech: Speech probability
            music: Music probability
        """
        events = []
        with self._lock:
            if not self.state.active:
                return
            state = self.state
            state.classifier_speech_prob = speech
            state.classifier_music_prob = music

            is_speech = speech > self.classifier_confidence and speech > music * self.speech_to_music_ratio
            is_music = music > self.classifier_confidence
            decision = 'SPEECH' if is_speech else 'MUSIC' if is_music else 'UNCERTAIN'
            self._log_debug(f"Classifier: speech={speech * 100:.1f}% music={music * 100:.1f}% -> {decision}")

            if is_speech:
                state.speech_hit_count += 1
                state.music_hit_count = 0
                if state.speech_hit_count >= 2:
                    print("[WATCHDOG] Classifier confirmed SPEECH (2 consecutive hits)")
                    self._update_confidence(self.weights['speech_confirmed'], 'classifier', events)
                else:
                    self._log_debug("Classifier detected SPEECH (hit 1/2), waiting for confirmation...")
                    self._update_confidence(self.weights['speech_first_hit'], 'classifier', events)
            elif is_music:
                state.music_hit_count += 1
                state.speech_hit_count = 0
                if state.in_ad_break and state.music_hit_count >= 2:
                    print("[WATCHDOG] Classifier confirmed MUSIC (2 consecutive hits)")
                    state.confidence_score = 0.0
                    self._finish_ad(events)
            else:
                # No partial credit carries across an ambiguous reading
                state.speech_hit_count = 0
                state.music_hit_count = 0
        self._emit(events)

    # ------------------------------------------------------------------
    # Fusion and commit
    # ------------------------------------------------------------------

    def _update_confidence(self, additional: float, source: str, events: list):
        state = self.state
        if source == 'metadata':
            state.confidence_score = max(0.0, state.confidence_score * self.metadata_decay)
        state.confidence_score = max(0.0, min(100.0, state.confidence_score + additional))

        if additional > 0:
            self._log_debug(f"Confidence: {state.confidence_score:.1f} (+{additional} from {source})")

        if not state.in_ad_break and state.confidence_score >= self.skip_threshold:
            self._start_debounce()

        if state.in_ad_break and state.confidence_score < self.finish_threshold:
            self._finish_ad(events)

    def _start_debounce(self):
        if self.scheduler.is_scheduled(DEBOUNCE_TASK):
            return
        self.scheduler.call_later(DEBOUNCE_TASK, self.debounce, self._confirm_ad)

    def _confirm_ad(self):
        events = []
        with self._lock:
            state = self.state
            if state.active and not state.in_ad_break and state.confidence_score >= self.skip_threshold:
                print(f"[WATCHDOG] AD_DETECTED triggered! Confidence: {state.confidence_score:.1f}")
                state.in_ad_break = True
                events.append(AdDetected(replace(state)))
        self._emit(events)

    def _finish_ad(self, events: list):
        print("[WATCHDOG] AD_FINISHED triggered! Music resumed.")
        self.state.in_ad_break = False
        self.state.confidence_score = 0.0
        events.append(AdFinished(replace(self.state)))

    def _emit(self, events: list):
        handler = self._handler
        if handler is None:
            return
        for event in events:
            try:
                handler(event)
            except Exception as e:
                print(f"[WATCHDOG] Event handler error: {e}")
