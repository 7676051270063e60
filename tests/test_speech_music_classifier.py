"""
Tests for the speech/music classifier adapter.

A small fake extractor/model pair stands in for the pretrained AudioSet model,
so the label mapping, resampling, safe defaults and one-time loading can be
checked without downloading weights.
"""

import math
import threading
import time

import numpy as np
import pytest
import torch

from smart_skip.speech_music_classifier import NEUTRAL_READING, SpeechMusicClassifier

SPEECH_INDEX = 0
MUSIC_INDEX = 132


def logit(p):
    return math.log(p / (1 - p))


class FakeExtractor:
    def __init__(self):
        self.lengths = []

    def __call__(self, audio, sampling_rate, return_tensors):
        assert return_tensors == "pt"
        self.lengths.append((len(audio), sampling_rate))
        return {"input_values": torch.tensor(audio, dtype=torch.float32).unsqueeze(0)}


class FakeModel:
    def __init__(self, speech=0.9, music=0.05, labels=None, error=None):
        self.config = type("ModelConfig", (), {})()
        self.config.label2id = labels if labels is not None else {
            "Speech": SPEECH_INDEX, "Music": MUSIC_INDEX, "Silence": 500}
        self.speech = speech
        self.music = music
        self.error = error

    def __call__(self, input_values):
        if self.error:
            raise self.error
        logits = torch.full((1, 527), -10.0)
        logits[0, SPEECH_INDEX] = logit(self.speech)
        logits[0, MUSIC_INDEX] = logit(self.music)
        return type("Output", (), {"logits": logits})()


class CountingLoader:
    def __init__(self, model=None, error=None, delay=0.0):
        self.extractor = FakeExtractor()
        self.model = model or FakeModel()
        self.error = error
        self.delay = delay
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return self.extractor, self.model


def make_classifier(loader, **kwargs):
    return SpeechMusicClassifier(loader=loader, **kwargs)


def one_second(rate=16000):
    return np.zeros(rate, dtype=np.float32)


class TestReadings:

    def test_probabilities_from_speech_and_music_labels(self):
        classifier = make_classifier(CountingLoader())
        reading = classifier.classify(one_second(), 16000)
        assert reading.speech == pytest.approx(0.9, abs=1e-4)
        assert reading.music == pytest.approx(0.05, abs=1e-4)
        assert reading.other == pytest.approx(0.05, abs=1e-4)

    def test_other_never_negative(self):
        classifier = make_classifier(CountingLoader(FakeModel(speech=0.8, music=0.7)))
        assert classifier.classify(one_second(), 16000).other == 0.0

    def test_capture_is_resampled_to_model_rate(self):
        loader = CountingLoader()
        classifier = make_classifier(loader)
        classifier.classify(np.zeros(44100, dtype=np.float32), 44100)
        assert loader.extractor.lengths == [(16000, 16000)]

    def test_stereo_capture_is_mixed_down(self):
        loader = CountingLoader()
        classifier = make_classifier(loader)
        classifier.classify(np.zeros((16000, 2), dtype=np.float32), 16000)
        assert loader.extractor.lengths == [(16000, 16000)]


class TestSafeDefaults:

    def test_empty_capture_is_neutral_without_loading(self):
        loader = CountingLoader()
        classifier = make_classifier(loader)
        assert classifier.classify(np.zeros(0, dtype=np.float32), 16000) == NEUTRAL_READING
        assert classifier.classify(None, 16000) == NEUTRAL_READING
        assert loader.calls == 0

    def test_load_failure_is_neutral(self):
        classifier = make_classifier(CountingLoader(error=OSError("no network")))
        assert classifier.classify(one_second(), 16000) == NEUTRAL_READING
        assert not classifier.is_loaded

    def test_missing_labels_is_neutral(self):
        loader = CountingLoader(FakeModel(labels={"Dog": 0, "Cat": 1}))
        classifier = make_classifier(loader)
        assert classifier.classify(one_second(), 16000) == NEUTRAL_READING

    def test_inference_error_is_neutral(self):
        loader = CountingLoader(FakeModel(error=RuntimeError("CUDA out of memory")))
        classifier = make_classifier(loader)
        assert classifier.classify(one_second(), 16000) == NEUTRAL_READING
        assert classifier.is_loaded

    def test_torch_failure_is_neutral(self, monkeypatch):
        def broken_sigmoid(tensor):
            raise RuntimeError("torch backend unavailable")

        monkeypatch.setattr(torch, "sigmoid", broken_sigmoid)
        classifier = make_classifier(CountingLoader())
        assert classifier.classify(one_second(), 16000) == NEUTRAL_READING

    def test_failed_load_waits_for_cooldown(self):
        now = [0.0]
        loader = CountingLoader(error=OSError("no network"))
        classifier = make_classifier(loader, retry_cooldown=60.0, clock=lambda: now[0])

        classifier.classify(one_second(), 16000)
        now[0] = 30.0
        classifier.classify(one_second(), 16000)
        assert loader.calls == 1

        now[0] = 61.0
        classifier.classify(one_second(), 16000)
        assert loader.calls == 2


class TestInitialization:

    def test_concurrent_callers_share_one_load(self):
        loader = CountingLoader(delay=0.05)
        classifier = make_classifier(loader)
        results = []
        threads = [threading.Thread(target=lambda: results.append(classifier.initialize()))
                   for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == [True] * 5
        assert loader.calls == 1

    def test_concurrent_calls_are_all_counted(self):
        classifier = make_classifier(CountingLoader())

        def worker():
            for _ in range(50):
                classifier.classify(None, 16000)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert classifier.get_status()["classification_count"] == 400

    def test_label_lookup_is_case_insensitive(self):
        loader = CountingLoader(FakeModel(labels={"speech": SPEECH_INDEX, "MUSIC": MUSIC_INDEX}))
        classifier = make_classifier(loader)
        reading = classifier.classify(one_second(), 16000)
        assert reading.speech == pytest.approx(0.9, abs=1e-4)

    def test_status_reports_load_state(self):
        classifier = make_classifier(CountingLoader())
        assert not classifier.get_status()['loaded']
        classifier.initialize()
        status = classifier.get_status()
        assert status['loaded']
        assert status['device'] == "cpu"


class TestCaptureDump:

    def test_save_dir_writes_wav(self, tmp_path):
        classifier = make_classifier(CountingLoader(), save_dir=str(tmp_path))
        classifier.classify(one_second(), 16000)
        assert len(list(tmp_path.glob("capture_*.wav"))) == 1

    def test_capture_names_carry_the_call_number(self, tmp_path):
        classifier = make_classifier(CountingLoader(), save_dir=str(tmp_path))
        classifier.classify(None, 16000)
        classifier.classify(one_second(), 16000)
        names = [path.name for path in tmp_path.glob("capture_*.wav")]
        assert len(names) == 1
        assert names[0].endswith("_2.wav")
