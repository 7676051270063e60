"""
Configuration settings for Smart Skip

Every tunable for ad detection, crossfading, stream connection and silence
detection lives here as a class attribute so it can be tweaked in one place.
"""
import os
import torch # type: ignore

class Config:
    """Configuration class for the Smart Skip radio monitor"""

    # Analysis tap
    FS = 44100  # Capture sample rate
    FFT_SIZE = 2048  # Analysis window, gives FFT_SIZE // 2 frequency bins
    TAP_BUFFER_SECONDS = 4.0  # Raw sample history kept for classifier captures
    MIN_DECIBELS = -100.0  # Byte scaling range for frequency snapshots
    MAX_DECIBELS = -30.0

    # Detection intervals (seconds)
    METADATA_CHECK_INTERVAL = 2.0
    SPECTRAL_CHECK_INTERVAL = 0.5
    CLASSIFIER_CHECK_INTERVAL = 15.0  # Normal listening
    CLASSIFIER_AD_CHECK_INTERVAL = 10.0  # While in an ad break
    CLASSIFIER_CAPTURE_SECONDS = 2.0

    # Detection thresholds
    DEBOUNCE_SECONDS = 2.0
    MIN_CONFIDENCE_TO_SKIP = 60
    CONFIDENCE_TO_FINISH = 20
    METADATA_DECAY = 0.7
    STATIC_METADATA_TIMEOUT = 180.0  # 3 minutes
    PREROLL_GRACE_PERIOD = 0.0  # No grace period by default
    VOICE_RATIO_THRESHOLD = 0.50
    VOICE_SPIKE_SECONDS = 1.5
    VOICE_DIP_TOLERANCE = 5.0
    CLASSIFIER_CONFIDENCE = 0.85
    SPEECH_TO_MUSIC_RATIO = 1.5

    # Confidence weights
    WEIGHT_SUSPICIOUS_KEYWORD = 40
    WEIGHT_STATION_NAME = 30
    WEIGHT_NON_STANDARD_FORMAT = 20
    WEIGHT_STATIC_METADATA = 20
    WEIGHT_VOICE_CONTENT = 50
    WEIGHT_SPEECH_FIRST_HIT = 20
    WEIGHT_SPEECH_CONFIRMED = 45

    SUSPICIOUS_KEYWORDS = [
        'commercial', 'break', 'ad ', 'ads ', 'sponsor', 'jingle', 'promo',
        'advertisement', 'brought to you', 'message from', 'word from',
        'traffic', 'weather', 'news update', 'station id'
    ]

    # Classifier model
    CLASSIFIER_MODEL = "MIT/ast-finetuned-audioset-10-10-0.4593"
    CLASSIFIER_SAMPLE_RATE = 16000
    CLASSIFIER_RETRY_COOLDOWN = 60.0  # Seconds before retrying a failed model load
    DEVICE = "cuda" if torch.cuda.is_available() else "cpu"

    # Debug capture storage
    SAVE_DIR = "audio_captures"
    KEEP_AUDIO_FILES = False  # Set to True to keep classifier captures for debugging

    # Crossfade
    CROSSFADE_DURATION = 1.5
    CROSSFADE_STEPS = 30
    DEFAULT_VOLUME = 75  # 0-100

    # Stream connection
    RELAY_URL = "/api/proxy"
    STAGE_TIMEOUT = 3.0
    HARD_CONNECT_TIMEOUT = 7.0
    STALL_TIMEOUT = 5.0
    SKIP_DELAY = 1.0  # Pause before an automatic skip moves to the next station

    # Silence detection
    SILENCE_CHECK_INTERVAL = 1.0
    SILENCE_NOISE_FLOOR = 2  # Byte deviation from the 128 center
    SILENCE_SKIP_SECONDS_SMART = 7  # While smart skip is on
    SILENCE_SKIP_SECONDS = 10  # Plain playback

    # Logging
    MINIMAL_LOGGING = True
    DEBUG_WATCHDOG = False
    DEBUG_CLASSIFIER = False
    DEBUG_CONNECTION = False

    # Desktop capture (main.py)
    INPUT_DEVICE = None  # None uses the system default input
    STATUS_INTERVAL = 60  # Seconds between status blocks

    def __init__(self):
        """Validate settings and prepare directories"""
        if self.MINIMAL_LOGGING:
            os.environ['PYTHONWARNINGS'] = 'ignore::UserWarning'
            os.environ['TRANSFORMERS_VERBOSITY'] = 'error'
            import warnings
            warnings.filterwarnings('ignore', category=UserWarning)

        os.makedirs(self.SAVE_DIR, exist_ok=True)

        # FFT size must be a power of two between 32 and 32768
        if self.FFT_SIZE < 32 or self.FFT_SIZE > 32768 or self.FFT_SIZE & (self.FFT_SIZE - 1):
            if not self.MINIMAL_LOGGING:
                print(f"Warning: Invalid FFT_SIZE {self.FFT_SIZE}. Using 2048.")
            self.FFT_SIZE = 2048

        if self.CROSSFADE_STEPS < 1:
            self.CROSSFADE_STEPS = 1
        if self.CROSSFADE_DURATION < 0:
            self.CROSSFADE_DURATION = 0.0
        self.DEFAULT_VOLUME = max(0, min(100, self.DEFAULT_VOLUME))

        # Automatic skips always go through a timer, never inline
        if self.SKIP_DELAY <= 0:
            self.SKIP_DELAY = 1.0

        if self.TAP_BUFFER_SECONDS < self.CLASSIFIER_CAPTURE_SECONDS:
            self.TAP_BUFFER_SECONDS = self.CLASSIFIER_CAPTURE_SECONDS

        # The finish threshold has to sit below the skip threshold for hysteresis
        if self.CONFIDENCE_TO_FINISH >= self.MIN_CONFIDENCE_TO_SKIP:
            self.CONFIDENCE_TO_FINISH = self.MIN_CONFIDENCE_TO_SKIP // 3

        if not self.MINIMAL_LOGGING:
            print(f"Smart Skip configuration loaded:")
            print(f"  Capture: {self.FS} Hz, FFT {self.FFT_SIZE}")
            print(f"  Classifier: {self.CLASSIFIER_MODEL} on {self.DEVICE}")
            print(f"  Skip threshold: {self.MIN_CONFIDENCE_TO_SKIP} | Finish below: {self.CONFIDENCE_TO_FINISH}")

    def get_detection_settings(self) -> dict:
        """Get ad detection settings as watchdog keyword arguments"""
        return {
            'metadata_interval': self.METADATA_CHECK_INTERVAL,
            'spectral_interval': self.SPECTRAL_CHECK_INTERVAL,
            'classifier_interval': self.CLASSIFIER_CHECK_INTERVAL,
            'classifier_ad_interval': self.CLASSIFIER_AD_CHECK_INTERVAL,
            'capture_seconds': self.CLASSIFIER_CAPTURE_SECONDS,
            'debounce': self.DEBOUNCE_SECONDS,
            'skip_threshold': self.MIN_CONFIDENCE_TO_SKIP,
            'finish_threshold': self.CONFIDENCE_TO_FINISH,
            'metadata_decay': self.METADATA_DECAY,
            'static_metadata_timeout': self.STATIC_METADATA_TIMEOUT,
            'grace_period': self.PREROLL_GRACE_PERIOD,
            'voice_threshold': self.VOICE_RATIO_THRESHOLD,
            'voice_spike_seconds': self.VOICE_SPIKE_SECONDS,
            'voice_dip_tolerance': self.VOICE_DIP_TOLERANCE,
            'classifier_confidence': self.CLASSIFIER_CONFIDENCE,
            'speech_to_music_ratio': self.SPEECH_TO_MUSIC_RATIO,
            'keywords': list(self.SUSPICIOUS_KEYWORDS),
            'weights': self.get_weights(),
            'debug': self.DEBUG_WATCHDOG,
        }

    def get_weights(self) -> dict:
        """Get confidence weights"""
        return {
            'suspicious_keyword': self.WEIGHT_SUSPICIOUS_KEYWORD,
            'station_name': self.WEIGHT_STATION_NAME,
            'non_standard_format': self.WEIGHT_NON_STANDARD_FORMAT,
            'static_metadata': self.WEIGHT_STATIC_METADATA,
            'voice_content': self.WEIGHT_VOICE_CONTENT,
            'speech_first_hit': self.WEIGHT_SPEECH_FIRST_HIT,
            'speech_confirmed': self.WEIGHT_SPEECH_CONFIRMED,
        }

    def get_crossfade_settings(self) -> dict:
        """Get crossfade settings as mixer keyword arguments"""
        return {
            'duration': self.CROSSFADE_DURATION,
            'steps': self.CROSSFADE_STEPS,
            'volume': self.DEFAULT_VOLUME / 100,
        }

    def get_connection_settings(self) -> dict:
        """Get stream connection settings as connection manager keyword arguments"""
        return {
            'relay_url': self.RELAY_URL,
            'stage_timeout': self.STAGE_TIMEOUT,
            'hard_timeout': self.HARD_CONNECT_TIMEOUT,
            'stall_timeout': self.STALL_TIMEOUT,
            'debug': self.DEBUG_CONNECTION,
        }

    def get_classifier_settings(self) -> dict:
        """Get classifier settings as adapter keyword arguments"""
        return {
            'model_name': self.CLASSIFIER_MODEL,
            'model_sample_rate': self.CLASSIFIER_SAMPLE_RATE,
            'device': self.DEVICE,
            'retry_cooldown': self.CLASSIFIER_RETRY_COOLDOWN,
            'save_dir': self.SAVE_DIR if self.KEEP_AUDIO_FILES else None,
            'debug': self.DEBUG_CLASSIFIER,
        }

    def set_minimal_logging(self, enabled: bool):
        """Toggle minimal logging mode"""
        self.MINIMAL_LOGGING = enabled
        if enabled:
            os.environ['PYTHONWARNINGS'] = 'ignore::UserWarning'
            os.environ['TRANSFORMERS_VERBOSITY'] = 'error'
        else:
            if 'PYTHONWARNINGS' in os.environ:
                del os.environ['PYTHONWARNINGS']
            if 'TRANSFORMERS_VERBOSITY' in os.environ:
                del os.environ['TRANSFORMERS_VERBOSITY']

    def set_debug(self, enabled: bool):
        """Enable/disable verbose output for every component"""
        self.DEBUG_WATCHDOG = enabled
        self.DEBUG_CLASSIFIER = enabled
        self.DEBUG_CONNECTION = enabled
        if not self.MINIMAL_LOGGING:
            mode = "enabled" if enabled else "disabled"
            print(f"Debug output {mode}")
