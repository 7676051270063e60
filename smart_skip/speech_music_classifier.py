"""
Speech/Music Classifier - pretrained model adapter

Wraps a pretrained AudioSet event classifier and reduces its output to the two
probabilities the ad watchdog cares about: speech and music.

Features:
- Lazy, one-time model load shared by concurrent callers
- Resampling to the model rate (16 kHz mono)
- Neutral fallback reading on any failure, never raises
- Tensor cleanup after every call

Usage:
    classifier = SpeechMusicClassifier(debug=True)
    reading = classifier.classify(samples, 44100)
"""

import os
import time
import threading
import numpy as np # type: ignore
import torch # type: ignore
import soundfile as sf # type: ignore
from dataclasses import dataclass
from typing import Callable, Optional

@dataclass(frozen=True)
class ClassifierReading:
    """Speech/music probabilities for one capture"""
    speech: float
    music: float
    other: float

NEUTRAL_READING = ClassifierReading(speech=0.0, music=0.0, other=1.0)


class SpeechMusicClassifier:
    """
    Speech vs music probabilities from a pretrained audio event model
    """

    def __init__(self,
                 model_name: str = "MIT/ast-finetuned-audioset-10-10-0.4593",
                 model_sample_rate: int = 16000,
                 device: str = "cpu",
                 retry_cooldown: float = 60.0,
                 save_dir: Optional[str] = None,
                 debug: bool = False,
                 loader: Optional[Callable] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the adapter. The model itself is loaded on first use.

        Args:
            model_name: Hugging Face id of an AudioSet classifier with "Speech" and "Music" labels
            model_sample_rate: Rate the model expects (Hz)
            device: Torch device for inference
            retry_cooldown: Seconds to wait before retrying a failed load
            save_dir: If set, every capture is written there as a WAV file
            debug: Enable detailed debug output
            loader: Callable returning (feature_extractor, model); defaults to transformers
            clock: Time source for the retry cooldown
        """
        self.model_name = model_name
        self.model_sample_rate = model_sample_rate
        self.device = device
        self.retry_cooldown = retry_cooldown
        self.save_dir = save_dir
        self.debug = debug
        self._loader = loader or self._load_pretrained
        self._clock = clock

        self._extractor = None
        self._model = None
        self._speech_index = None
        self._music_index = None
        self._init_lock = threading.Lock()
        self._count_lock = threading.Lock()
        self._last_failure = None
        self.classification_count = 0

    def _log_debug(self, message: str):
        """Log debug message if debug mode is enabled"""
        if self.debug:
            print(f"[CLASSIFIER] {message}")

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def _load_pretrained(self):
        from transformers import AutoFeatureExtractor, AutoModelForAudioClassification # type: ignore

        extractor = AutoFeatureExtractor.from_pretrained(self.model_name)
        model = AutoModelForAudioClassification.from_pretrained(self.model_name)
        model = model.to(self.device)
        model.eval()
        return extractor, model

    def initialize(self) -> bool:
        """
        Load the model once. Concurrent callers wait on the same load.

        Returns:
            True if the model is ready
        """
        if self._model is not None:
            return True

        with self._init_lock:
            if self._model is not None:
                return True
            if self._last_failure is not None and self._clock() - self._last_failure < self.retry_cooldown:
                return False

            print(f"[CLASSIFIER] Loading model: {self.model_name} on {self.device}")
            try:
                extractor, model = self._loader()
                label2id = {label.lower(): index for label, index in model.config.label2id.items()}
                if 'speech' not in label2id or 'music' not in label2id:
                    raise ValueError("Model has no Speech/Music labels")

                self._speech_index = int(label2id['speech'])
                self._music_index = int(label2id['music'])
                self._extractor = extractor
                self._model = model
                self._last_failure = None
                print("[CLASSIFIER] Model loaded")
                return True
            except Exception as e:
                self._last_failure = self._clock()
                print(f"[CLASSIFIER] Error loading model: {e}")
                return False

    def _prepare(self, samples, sample_rate: int) -> np.ndarray:
        """Mono float32 at the model rate"""
        audio = np.asarray(samples, dtype=np.float32)
        if audio.ndim > 1:
            audio = audio.mean(axis=1)
        audio = np.nan_to_num(audio, nan=0.0, posinf=0.0, neginf=0.0)

        if sample_rate != self.model_sample_rate:
            import librosa # type: ignore
            audio = librosa.resample(audio, orig_sr=sample_rate, target_sr=self.model_sample_rate)

        return np.ascontiguousarray(audio, dtype=np.float32)

    def classify(self, samples, sample_rate: int) -> ClassifierReading:
        """
        Classify a short capture

        Args:
            samples: Raw audio samples (mono or frames x channels)
            sample_rate: Capture sample rate (Hz)

        Returns:
            ClassifierReading; NEUTRAL_READING on any failure
        """
        with self._count_lock:
            self.classification_count += 1
            number = self.classification_count

        if samples is None or len(samples) == 0:
            self._log_debug("Empty capture, returning neutral reading")
            return NEUTRAL_READING

        if not self.initialize():
            return NEUTRAL_READING

        inputs = None
        logits = None
        probs = None
        try:
            audio = self._prepare(samples, sample_rate)
            if audio.size == 0:
                return NEUTRAL_READING

            if self.save_dir:
                self.save_audio(audio, number)

            inputs = self._extractor(audio, sampling_rate=self.model_sample_rate, return_tensors="pt")
            inputs = {key: value.to(self.device) for key, value in inputs.items()}

            with torch.inference_mode():
                logits = self._model(**inputs).logits

            # AudioSet is multi-label: independent sigmoid per class
            probs = torch.sigmoid(logits)[0]
            speech = float(probs[self._speech_index].item())
            music = float(probs[self._music_index].item())
            other = max(0.0, 1.0 - (speech + music))

            self._log_debug(f"Classification #{number}: speech={speech:.3f} music={music:.3f}")
            return ClassifierReading(speech=speech, music=music, other=other)

        except Exception as e:
            print(f"[CLASSIFIER] Inference error: {e}")
            return NEUTRAL_READING
        finally:
            del inputs, logits, probs
            if self.device == "cuda" and torch.cuda.is_available():
                torch.cuda.empty_cache()

    def save_audio(self, audio: np.ndarray, number: int = 0) -> str:
        """Save a model-rate capture to file"""
        timestamp = time.strftime("%Y%m%d-%H%M%S")
        filename = os.path.join(self.save_dir, f"capture_{timestamp}_{number}.wav")
        sf.write(filename, audio, self.model_sample_rate, subtype='PCM_16')
        return filename

    def get_status(self) -> dict:
        """
        Get current classifier status

        Returns:
            Dictionary with current status information
        """
        return {
            'model': self.model_name,
            'device': self.device,
            'loaded': self.is_loaded,
            'classification_count': self.classification_count,
            'last_failure': self._last_failure,
        }
