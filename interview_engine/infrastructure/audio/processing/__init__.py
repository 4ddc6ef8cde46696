"""Audio processing, silence detection and capture modules."""

from .processing import (
    to_float32,
    stereo_to_mono,
    remove_dc,
    frame_rms,
    resample,
    normalize_audio,
    to_pcm16,
    write_wav,
)
from .silence import SilenceDetector, SilenceWatchdog
from .capture import AudioSource, SharedMediaStream, WavRecorder

__all__ = [
    "to_float32", "stereo_to_mono", "remove_dc", "frame_rms", "resample",
    "normalize_audio", "to_pcm16", "write_wav",
    "SilenceDetector", "SilenceWatchdog",
    "AudioSource", "SharedMediaStream", "WavRecorder",
]
