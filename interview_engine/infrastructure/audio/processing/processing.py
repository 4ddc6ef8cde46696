"""
Basic audio processing functions including format conversions and normalization.
"""
import wave
from math import gcd

import numpy as np
from scipy.signal import resample_poly

from ....config import TARGET_RMS


def to_float32(samples: np.ndarray) -> np.ndarray:
    """Convert integer PCM (or float) samples to float32 in [-1, 1]."""
    if samples.dtype == np.int16:
        return samples.astype(np.float32) / 32768.0
    if samples.dtype == np.int32:
        return samples.astype(np.float32) / 2147483648.0
    return samples.astype(np.float32, copy=False)


def stereo_to_mono(x: np.ndarray) -> np.ndarray:
    """Convert stereo audio to mono by averaging channels."""
    if x.ndim == 1:
        return x
    return np.mean(x, axis=1)


def remove_dc(x: np.ndarray) -> np.ndarray:
    """Remove DC offset from audio signal."""
    return x - np.mean(x)


def frame_rms(x: np.ndarray) -> float:
    """Root-mean-square amplitude of one frame."""
    if x.size == 0:
        return 0.0
    x = to_float32(x)
    return float(np.sqrt(np.mean(np.square(x, dtype=np.float64))))


def resample(mono: np.ndarray, sr_from: int, sr_to: int) -> np.ndarray:
    """Resample mono audio between arbitrary integer rates."""
    if sr_from == sr_to:
        return mono.astype(np.float32, copy=False)
    divisor = gcd(sr_from, sr_to)
    return resample_poly(mono, up=sr_to // divisor, down=sr_from // divisor).astype(np.float32)


def normalize_audio(audio: np.ndarray, target_rms: float = TARGET_RMS) -> np.ndarray:
    """Normalize audio to target RMS level."""
    rms = float(np.sqrt(np.mean(audio**2)) + 1e-9)
    gain = min(20.0, target_rms / rms) if rms > 0 else 1.0
    return audio * gain


def to_pcm16(audio: np.ndarray) -> np.ndarray:
    """Float audio in [-1, 1] to int16 PCM."""
    return np.clip(audio * 32767, -32768, 32767).astype(np.int16)


def write_wav(path: str, pcm16: np.ndarray, sr: int, channels: int = 1) -> None:
    """Write PCM16 audio data to WAV file."""
    with wave.open(path, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm16.tobytes())
