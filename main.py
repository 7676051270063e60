#!/usr/bin/env python3
"""
Smart Skip Monitor - Desktop Ad Detection

Listens to whatever the desktop is playing (a radio stream in a browser, a
media player, ...) and reports in real time when an ad break starts and ends,
and when the audio has gone silent.
"""

import sys
import time
import signal
import threading
from pathlib import Path

# Add the current directory to Python path for imports
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))

# Import our modules
from smart_skip.config import Config
from smart_skip.scheduler import TaskScheduler
from smart_skip.analysis_tap import AnalysisTap
from smart_skip.audio_input import DesktopAudioFeed
from smart_skip.speech_music_classifier import SpeechMusicClassifier
from smart_skip.ad_watchdog import AdDetectionWatchdog, AdDetected
from smart_skip.silence_watchdog import SilenceWatchdog

class SmartSkipMonitor:
    """Desktop ad detection monitor"""

    def __init__(self, station_label: str = ""):
        self.config = Config()
        self.station_label = station_label
        self.running = False
        self.ad_breaks = 0
        self.silence_alerts = 0
        self.in_ad_break_since = None

        self.scheduler = TaskScheduler("monitor")
        self.tap = AnalysisTap(sample_rate=self.config.FS,
                               fft_size=self.config.FFT_SIZE,
                               buffer_seconds=self.config.TAP_BUFFER_SECONDS,
                               min_decibels=self.config.MIN_DECIBELS,
                               max_decibels=self.config.MAX_DECIBELS)
        self.feed = DesktopAudioFeed(self.tap, device=self.config.INPUT_DEVICE)
        self.classifier = SpeechMusicClassifier(**self.config.get_classifier_settings())
        self.watchdog = AdDetectionWatchdog(tap=self.tap,
                                            classifier=self.classifier,
                                            scheduler=self.scheduler,
                                            **self.config.get_detection_settings())
        self.silence = SilenceWatchdog(self.tap,
                                       on_silence=self._silence_callback,
                                       scheduler=self.scheduler,
                                       is_connected=lambda: self.tap.has_data,
                                       threshold=self.config.SILENCE_SKIP_SECONDS_SMART,
                                       noise_floor=self.config.SILENCE_NOISE_FLOOR,
                                       interval=self.config.SILENCE_CHECK_INTERVAL)

        # Set up signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, sig, frame):
        """Handle shutdown signals"""
        print("\nShutting down Smart Skip Monitor...")
        self.stop()
        sys.exit(0)

    def _ad_callback(self, event):
        """Report watchdog transitions"""
        timestamp = time.strftime("%H:%M:%S")
        state = event.state
        if isinstance(event, AdDetected):
            self.ad_breaks += 1
            self.in_ad_break_since = time.time()
            print(f"[{timestamp}] 📢 AD BREAK STARTED | Confidence: {state.confidence_score:.0f} | "
                  f"Metadata: {state.last_metadata or '-'}")
        else:
            duration = time.time() - self.in_ad_break_since if self.in_ad_break_since else 0
            self.in_ad_break_since = None
            print(f"[{timestamp}] 🎵 MUSIC RESUMED | Ad break lasted {duration:.0f}s")

    def _silence_callback(self, reason):
        self.silence_alerts += 1
        print(f"[{time.strftime('%H:%M:%S')}] 🔇 No audio for {self.silence.threshold}s - a player would skip now")

    def _print_system_status(self):
        """Print current status of the detectors"""
        state = self.watchdog.get_state()
        print("\n" + "="*60)
        print("SYSTEM STATUS")
        print("="*60)
        print(f"🎵 Audio: {'Receiving' if self.tap.has_data else 'Waiting'} | Blocks: {self.feed.blocks_received}")
        print(f"📊 Confidence: {state.confidence_score:.1f} | In ad break: {state.in_ad_break}")
        print(f"🗣️  Voice ratio: {state.voice_ratio * 100:.1f}% (baseline {state.baseline_voice_ratio * 100:.1f}%)")
        print(f"🤖 Classifier: speech={state.classifier_speech_prob:.2f} music={state.classifier_music_prob:.2f} "
              f"| Runs: {self.classifier.classification_count}")
        print(f"📋 Ad breaks: {self.ad_breaks} | Silence alerts: {self.silence_alerts}")
        print("="*60)

    def start(self):
        """Start the monitor"""
        print("=" * 60)
        print("Smart Skip Monitor - Desktop Ad Detection")
        print("=" * 60)

        self.running = True

        print("Starting desktop audio capture...")
        feed_thread = threading.Thread(target=self.feed.run, daemon=True)
        feed_thread.start()
        print("✓ Desktop audio capture started")

        self.watchdog.start(self.station_label, self._ad_callback)
        print("✓ Ad detection started")
        self.silence.start()
        print("✓ Silence detection started")

        print("\n" + "=" * 60)
        print("🚀 Smart Skip Monitor is now running!")
        print(f"   Skip threshold: {self.config.MIN_CONFIDENCE_TO_SKIP} | Finish below: {self.config.CONFIDENCE_TO_FINISH}")
        print("\nPress Ctrl+C to stop")
        print("=" * 60)

        # Status update loop
        last_status_update = time.time()

        try:
            while self.running:
                time.sleep(1)

                # Periodic status update
                if time.time() - last_status_update > self.config.STATUS_INTERVAL:
                    self._print_system_status()
                    last_status_update = time.time()

        except KeyboardInterrupt:
            print("\nReceived interrupt signal...")
        finally:
            self.stop()

    def stop(self):
        """Stop the monitor"""
        if not self.running:
            return

        print("\n🛑 Stopping smart skip monitoring...")
        self.running = False

        self.watchdog.stop()
        self.silence.stop()
        self.scheduler.cancel_all()
        self.feed.stop()
        print("✓ Detectors stopped")
        print("🎯 Smart Skip Monitor stopped successfully")

def check_dependencies():
    """Check if required dependencies are installed"""
    missing_deps = []

    try:
        import torch
    except ImportError:
        missing_deps.append("torch")

    try:
        import transformers
    except ImportError:
        missing_deps.append("transformers")

    try:
        import librosa
    except ImportError:
        missing_deps.append("librosa")

    try:
        import sounddevice
    except ImportError:
        missing_deps.append("sounddevice")

    try:
        import soundfile
    except ImportError:
        missing_deps.append("soundfile")

    if missing_deps:
        print("❌ Missing required dependencies:")
        for dep in missing_deps:
            print(f"   - {dep}")
        print("\nInstall missing dependencies with:")
        print(f"   pip install {' '.join(missing_deps)}")
        return False

    print("✅ All dependencies are installed")
    return True

def main():
    """Main entry point"""
    print("🔍 Checking dependencies...")

    if not check_dependencies():
        print("\n❌ Please install missing dependencies before running.")
        sys.exit(1)

    # Optional station name, used to spot self-referential announcements
    station_label = " ".join(sys.argv[1:])

    try:
        monitor = SmartSkipMonitor(station_label)
        monitor.start()
    except Exception as e:
        print(f"❌ Error starting Smart Skip Monitor: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

if __name__ == "__main__":
    main()
