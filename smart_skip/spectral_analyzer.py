"""
Spectral & loudness analysis of a frequency snapshot

Pure functions: baselines and history belong to the caller.
"""

import numpy as np # type: ignore
from dataclasses import dataclass

BASS_END_HZ = 300
VOICE_END_HZ = 3000
MAGNITUDE_SCALE = 255.0

@dataclass(frozen=True)
class SpectralReading:
    """Band energy split and loudness of one snapshot"""
    voice_ratio: float
    rms: float
    bass_ratio: float
    mid_ratio: float
    high_ratio: float


def band_edges(sample_rate: int, bin_count: int):
    """
    Map the bass/voice frequency boundaries to bin indices

    Returns:
        Tuple of (bass_end_bin, voice_end_bin)
    """
    nyquist = sample_rate / 2
    bass_end = int(np.floor((BASS_END_HZ / nyquist) * bin_count))
    voice_end = int(np.floor((VOICE_END_HZ / nyquist) * bin_count))
    return bass_end, voice_end


def analyze_spectrum(magnitudes, sample_rate: int, bin_count: int = None) -> SpectralReading:
    """
    Split a magnitude snapshot into bass (0-300 Hz), voice (300-3000 Hz) and high bands

    Args:
        magnitudes: Unsigned magnitude values (0-255), one per frequency bin
        sample_rate: Sample rate the snapshot was produced at
        bin_count: Number of bins the snapshot covers (defaults to len(magnitudes))

    Returns:
        SpectralReading with voice_ratio = voice/total and rms over normalized bins
    """
    values = np.asarray(magnitudes, dtype=np.float64)
    if bin_count is None:
        bin_count = len(values)
    values = values[:bin_count]
    if len(values) == 0:
        return SpectralReading(0.0, 0.0, 0.0, 0.0, 0.0)

    bass_end, voice_end = band_edges(sample_rate, bin_count)
    bass_sum = float(values[:bass_end].sum())
    mid_sum = float(values[bass_end:voice_end].sum())
    high_sum = float(values[voice_end:].sum())
    total = bass_sum + mid_sum + high_sum

    normalized = values / MAGNITUDE_SCALE
    rms = float(np.sqrt(np.mean(normalized * normalized)))

    if total <= 0:
        return SpectralReading(0.0, rms, 0.0, 0.0, 0.0)

    return SpectralReading(
        voice_ratio=mid_sum / total,
        rms=rms,
        bass_ratio=bass_sum / total,
        mid_ratio=mid_sum / total,
        high_ratio=high_sum / total,
    )
