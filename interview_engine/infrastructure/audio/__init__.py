"""
Audio capture, silence detection and speech services.

- hardware: microphone source for the shared media stream
- processing: signal processing, silence detection, stream fan-out and recording
- speech: text-to-speech and speech-to-text capabilities
"""

from .processing import SharedMediaStream, SilenceDetector, SilenceWatchdog, WavRecorder
from .speech import (
    SpeechCapture, NullSpeechCapture, GoogleSpeechCapture,
    VoiceSynthesis, ConsoleVoiceSynthesis, GoogleVoiceSynthesis,
)

__all__ = [
    "SharedMediaStream", "SilenceDetector", "SilenceWatchdog", "WavRecorder",
    "SpeechCapture", "NullSpeechCapture", "GoogleSpeechCapture",
    "VoiceSynthesis", "ConsoleVoiceSynthesis", "GoogleVoiceSynthesis",
]
