"""Infrastructure components for the interview engine.

This module contains the low-level adapters the session controller is
composed from: audio capture, speech, code execution, proctoring,
persistence and the LLM client.
"""

# Audio infrastructure
from .audio import (
    SharedMediaStream, SilenceDetector, SilenceWatchdog, WavRecorder,
    SpeechCapture, NullSpeechCapture, GoogleSpeechCapture,
    VoiceSynthesis, ConsoleVoiceSynthesis, GoogleVoiceSynthesis,
)

# Code execution
from .execution import Judge0Client, CodeExecutionEngine, LocalStandInExecutor

# Proctoring
from .integrity import ExclusiveDisplay, IntegrityMonitor

# Persistence
from .data import SessionStore, JsonFileSessionStore

# LLM infrastructure
from .llm import VertexRestClient

__all__ = [
    # Audio
    "SharedMediaStream", "SilenceDetector", "SilenceWatchdog", "WavRecorder",
    "SpeechCapture", "NullSpeechCapture", "GoogleSpeechCapture",
    "VoiceSynthesis", "ConsoleVoiceSynthesis", "GoogleVoiceSynthesis",

    # Execution
    "Judge0Client", "CodeExecutionEngine", "LocalStandInExecutor",

    # Proctoring
    "ExclusiveDisplay", "IntegrityMonitor",

    # Persistence
    "SessionStore", "JsonFileSessionStore",

    # LLM client
    "VertexRestClient",
]
