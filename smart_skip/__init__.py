# smart_skip/__init__.py
"""
Smart Skip Package

Ad-aware radio monitoring: detects ad breaks on a live stream from metadata,
spectral and classifier evidence, crossfades to a backup station while they
air, and skips stations that fail to connect, stall or go silent.
"""

__version__ = "1.0.0"
__author__ = "Smart Skip"

from .config import Config
from .scheduler import TaskScheduler
from .analysis_tap import AnalysisTap
from .spectral_analyzer import SpectralReading, analyze_spectrum
from .speech_music_classifier import ClassifierReading, SpeechMusicClassifier, NEUTRAL_READING
from .ad_watchdog import AdDetectionWatchdog, AdDetected, AdFinished, DetectionState
from .crossfade_mixer import CrossfadeMixer
from .connection_manager import StreamConnectionManager, ConnectionStage
from .silence_watchdog import SilenceWatchdog
from .player import PlayerEvent, PlaybackRejected, Station, StreamPlayer
from .radio import SmartSkipRadio

__all__ = [
    'Config',
    'TaskScheduler',
    'AnalysisTap',
    'SpectralReading',
    'analyze_spectrum',
    'ClassifierReading',
    'SpeechMusicClassifier',
    'NEUTRAL_READING',
    'AdDetectionWatchdog',
    'AdDetected',
    'AdFinished',
    'DetectionState',
    'CrossfadeMixer',
    'StreamConnectionManager',
    'ConnectionStage',
    'SilenceWatchdog',
    'PlayerEvent',
    'PlaybackRejected',
    'Station',
    'StreamPlayer',
    'SmartSkipRadio',
]
