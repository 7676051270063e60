#!/usr/bin/env python3
"""
Smart Skip Helper Utilities

Standalone helper tools for configuring and debugging the Smart Skip monitor.
These utilities can be run individually and don't affect the main application.

Available tools:
1. Audio device lister - shows which devices can capture desktop audio
2. Spectral test - live voice-ratio / loudness readout from the capture device
3. File classifier - runs the speech/music model on an audio file

Usage:
    python helper.py audio              # List audio devices
    python helper.py test-audio         # Live spectral readout
    python helper.py classify FILE      # Classify an audio file
    python helper.py --help             # Show all options
"""

import argparse
import sys
import time

from smart_skip.analysis_tap import AnalysisTap
from smart_skip.spectral_analyzer import analyze_spectrum

def list_audio_devices():
    """List the audio devices that can feed the analysis tap"""
    print("=" * 60)
    print("AUDIO DEVICE INFORMATION")
    print("=" * 60)

    try:
        import sounddevice as sd # type: ignore

        devices = sd.query_devices()
        inputs = [(i, device) for i, device in enumerate(devices) if device['max_input_channels'] > 0]

        print(f"Capture-capable devices ({len(inputs)} of {len(devices)}):")
        print()
        for i, device in inputs:
            loopback = any(word in device['name'].lower()
                           for word in ('monitor', 'stereo mix', 'loopback', 'blackhole', 'cable'))
            marker = "  <- likely desktop audio" if loopback else ""
            print(f"Device {i:2d}: {device['name']}{marker}")
            print(f"          Channels: {device['max_input_channels']} in")
            print(f"          Sample Rate: {device['default_samplerate']:.0f} Hz")
            print()

        try:
            default_input = sd.default.device[0]
            if default_input is not None and default_input >= 0:
                print(f"Default input (ID {default_input}): {devices[default_input]['name']}")
                print()
        except Exception as e:
            print(f"Could not determine default input device: {e}")

        print("=" * 60)
        print("RECOMMENDATIONS")
        print("=" * 60)
        print("Smart Skip needs to hear what the desktop plays, so pick one of:")
        print("- Windows: enable 'Stereo Mix' in Sound settings")
        print("- macOS: route output through BlackHole")
        print("- Linux: use the PulseAudio/PipeWire 'Monitor of ...' device")
        print()
        print("Then set INPUT_DEVICE in smart_skip/config.py to its ID or name.")

    except ImportError:
        print("ERROR: sounddevice not installed.")
        print("Install it with: pip install sounddevice")
    except Exception as e:
        print(f"Error: {e}")

def test_audio_capture(duration: float = 10.0, device=None):
    """Show live band ratios and loudness the way the watchdog sees them"""
    print("=" * 60)
    print("SPECTRAL CAPTURE TEST")
    print("=" * 60)

    try:
        import sounddevice as sd # type: ignore
        from smart_skip.config import Config

        config = Config()
        tap = AnalysisTap(sample_rate=config.FS, fft_size=config.FFT_SIZE)

        def callback(indata, frames, timestamp, status):
            if status:
                print(f"[TAP] Audio status: {status}")
            tap.write(indata)

        print(f"Capturing for {duration:.0f}s - play a song, then some talk radio...")
        print()
        print("  time | voice% | bass% | high% |  rms  | voice?")
        print("-" * 52)

        voice_hits = 0
        readings = 0
        with sd.InputStream(samplerate=config.FS, channels=1, device=device,
                            callback=callback, blocksize=config.FS // 10):
            started = time.time()
            while time.time() - started < duration:
                time.sleep(config.SPECTRAL_CHECK_INTERVAL)
                reading = analyze_spectrum(tap.get_byte_frequency_data(), tap.sample_rate,
                                           tap.frequency_bin_count)
                is_voice = reading.voice_ratio > config.VOICE_RATIO_THRESHOLD
                voice_hits += int(is_voice)
                readings += 1
                print(f"{time.time() - started:5.1f}s | {reading.voice_ratio * 100:5.1f}% | "
                      f"{reading.bass_ratio * 100:4.1f}% | {reading.high_ratio * 100:4.1f}% | "
                      f"{reading.rms:.3f} | {'VOICE' if is_voice else ''}")

        print()
        if not tap.has_data:
            print("⚠️  WARNING: No audio received - check the input device")
        elif readings:
            print(f"Voice-heavy readings: {voice_hits}/{readings} ({voice_hits / readings * 100:.0f}%)")
            print(f"Voice threshold: {config.VOICE_RATIO_THRESHOLD * 100:.0f}% of total band energy")

    except ImportError:
        print("ERROR: sounddevice not installed.")
        print("Install it with: pip install sounddevice")
    except Exception as e:
        print(f"Error during audio test: {e}")

def classify_file(path: str, window: float = 2.0):
    """Run the speech/music classifier over an audio file, window by window"""
    print("=" * 60)
    print("SPEECH/MUSIC CLASSIFIER TEST")
    print("=" * 60)

    try:
        import soundfile as sf # type: ignore
        from smart_skip.config import Config
        from smart_skip.speech_music_classifier import SpeechMusicClassifier

        config = Config()
        audio, sample_rate = sf.read(path, dtype='float32', always_2d=False)
        if audio.ndim > 1:
            audio = audio.mean(axis=1)
        print(f"File: {path} ({len(audio) / sample_rate:.1f}s at {sample_rate} Hz)")

        classifier = SpeechMusicClassifier(**config.get_classifier_settings())
        if not classifier.initialize():
            print("❌ Model could not be loaded")
            return

        step = max(1, int(sample_rate * window))
        speech_windows = 0
        total = 0
        for start in range(0, len(audio), step):
            chunk = audio[start:start + step]
            if len(chunk) < step // 2:
                break
            reading = classifier.classify(chunk, sample_rate)
            is_speech = (reading.speech > config.CLASSIFIER_CONFIDENCE and
                         reading.speech > reading.music * config.SPEECH_TO_MUSIC_RATIO)
            is_music = reading.music > config.CLASSIFIER_CONFIDENCE
            label = 'SPEECH' if is_speech else 'MUSIC' if is_music else 'UNCERTAIN'
            speech_windows += int(is_speech)
            total += 1
            print(f"{start / sample_rate:6.1f}s  speech={reading.speech:.2f}  music={reading.music:.2f}  {label}")

        if total:
            print()
            print(f"Speech windows: {speech_windows}/{total}")

    except ImportError as e:
        print(f"ERROR: {e}")
    except Exception as e:
        print(f"Error during classification: {e}")

def main():
    parser = argparse.ArgumentParser(
        description="Smart Skip Helper Utilities",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Available commands:
  audio           List available audio devices
  test-audio      Live spectral readout from the capture device
  classify FILE   Run the speech/music classifier on an audio file

Examples:
  python helper.py audio
  python helper.py test-audio --duration 30
  python helper.py classify break.wav
        """
    )

    parser.add_argument('command',
                       choices=['audio', 'test-audio', 'classify'],
                       help='Helper command to run')
    parser.add_argument('file', nargs='?', help='Audio file for the classify command')
    parser.add_argument('--duration', type=float, default=10.0,
                       help='Capture length in seconds for test-audio')
    parser.add_argument('--device', default=None,
                       help='Input device ID or name for test-audio')

    args = parser.parse_args()

    if args.command == 'audio':
        list_audio_devices()
    elif args.command == 'test-audio':
        device = int(args.device) if args.device and args.device.isdigit() else args.device
        test_audio_capture(args.duration, device)
    elif args.command == 'classify':
        if not args.file:
            parser.error("classify needs an audio FILE")
        classify_file(args.file)

if __name__ == "__main__":
    main()
