"""Speech-to-text and text-to-speech modules."""

from .tts import VoiceSynthesis, ConsoleVoiceSynthesis, GoogleVoiceSynthesis
from .stt import (
    SpeechCapture, NullSpeechCapture, GoogleSpeechCapture,
    recognize_google_sync, CAPTURE_UNAVAILABLE
)

__all__ = [
    "VoiceSynthesis", "ConsoleVoiceSynthesis", "GoogleVoiceSynthesis",
    "SpeechCapture", "NullSpeechCapture", "GoogleSpeechCapture",
    "recognize_google_sync", "CAPTURE_UNAVAILABLE",
]
