"""Audio hardware sources (PyAudio is imported lazily when a device is opened)."""

from .microphone import MicrophoneSource

__all__ = ["MicrophoneSource"]
