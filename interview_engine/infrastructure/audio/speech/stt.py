"""
Speech-to-text capture using Google Cloud Speech.

Capture follows the shared media stream: audio is buffered and recognized in
chunks so the transcript grows while the candidate is still talking.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol

import numpy as np
from google.cloud import speech

from ..processing.capture import SharedMediaStream
from ..processing.processing import stereo_to_mono, resample, to_pcm16
from ....config import (
    DEFAULT_LANGUAGE_CODE, SAMPLE_RATE_TARGET, CAPTURE_MAX_RESTARTS,
    BACKOFF_BASE_SECONDS, BACKOFF_FACTOR, BACKOFF_CAP_SECONDS,
)
from ....errors import CaptureError
from ....utils import resilient_call

logger = logging.getLogger("speech_stt")

CAPTURE_UNAVAILABLE = "capture-unavailable"

TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]


class SpeechCapture(Protocol):
    """Incremental transcription capability."""

    def is_supported(self) -> bool: ...

    def start(self, on_update: TranscriptCallback, on_final: TranscriptCallback,
              on_error: ErrorCallback) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    async def stop(self) -> None: ...


class NullSpeechCapture:
    """Capture for hosts without speech recognition; answers arrive as text."""

    def is_supported(self) -> bool:
        return False

    def start(self, on_update: TranscriptCallback, on_final: TranscriptCallback,
              on_error: ErrorCallback) -> None:
        return None

    def pause(self) -> None:
        return None

    def resume(self) -> None:
        return None

    async def stop(self) -> None:
        return None


def recognize_google_sync(pcm16_bytes: bytes,
                          sr_hz: int = 16000,
                          language: str = DEFAULT_LANGUAGE_CODE,
                          client: Optional[speech.SpeechClient] = None) -> str:
    """
    Synchronous Google Cloud Speech-to-Text recognition.
    Returns transcribed text or empty string if no speech detected.

    Raises:
        google.api_core exceptions on transport failures (callers retry)
    """
    client = client or speech.SpeechClient()
    audio = speech.RecognitionAudio(content=pcm16_bytes)
    config = speech.RecognitionConfig(
        encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
        sample_rate_hertz=sr_hz,
        language_code=language,
        enable_automatic_punctuation=True,
    )
    resp = client.recognize(config=config, audio=audio)
    texts = [r.alternatives[0].transcript for r in resp.results if r.alternatives]
    return " ".join(texts).strip()


class GoogleSpeechCapture:
    """Chunked Google Cloud Speech recognition over the shared media stream."""

    def __init__(self,
                 stream: SharedMediaStream,
                 language: str = DEFAULT_LANGUAGE_CODE,
                 chunk_seconds: float = 4.0,
                 max_restarts: int = CAPTURE_MAX_RESTARTS,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None,
                 recognizer: Optional[Callable[[bytes, int, str], str]] = None):
        self.stream = stream
        self.language = language
        self.chunk_samples = int(stream.sample_rate * chunk_seconds)
        self.max_restarts = max_restarts
        self.sleep = sleep
        self._recognizer = recognizer
        self._client: Optional[speech.SpeechClient] = None
        self._buffer: List[np.ndarray] = []
        self._buffered = 0
        self._pending: List[asyncio.Task] = []
        self._segments: List[str] = []
        self._on_update: Optional[TranscriptCallback] = None
        self._on_final: Optional[TranscriptCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self.active = False
        self.paused = False
        self.unavailable = False

    def is_supported(self) -> bool:
        return not self.unavailable

    @property
    def transcript(self) -> str:
        return " ".join(s for s in self._segments if s).strip()

    def start(self, on_update: TranscriptCallback, on_final: TranscriptCallback,
              on_error: ErrorCallback) -> None:
        self._on_update, self._on_final, self._on_error = on_update, on_final, on_error
        self._buffer, self._buffered, self._segments = [], 0, []
        self.active = True
        self.paused = False
        self.stream.subscribe(self._consume)
        logger.info("Speech capture started")

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def _consume(self, frame: np.ndarray) -> None:
        if not self.active or self.paused or self.unavailable:
            return
        mono = stereo_to_mono(frame)
        self._buffer.append(mono)
        self._buffered += len(mono)
        if self._buffered >= self.chunk_samples:
            self._flush()

    def _flush(self) -> None:
        if not self._buffer:
            return
        audio = np.concatenate(self._buffer)
        self._buffer, self._buffered = [], 0
        index = len(self._segments)
        self._segments.append("")
        self._pending.append(asyncio.get_running_loop().create_task(self._recognize_chunk(index, audio)))

    def _recognize(self, pcm16_bytes: bytes, sr_hz: int, language: str) -> str:
        if self._recognizer is not None:
            return self._recognizer(pcm16_bytes, sr_hz, language)
        if self._client is None:
            self._client = speech.SpeechClient()
        return recognize_google_sync(pcm16_bytes, sr_hz, language, client=self._client)

    async def _recognize_chunk(self, index: int, audio: np.ndarray) -> None:
        pcm = to_pcm16(resample(audio, self.stream.sample_rate, SAMPLE_RATE_TARGET)).tobytes()
        try:
            text = await resilient_call(
                self._recognize, pcm, SAMPLE_RATE_TARGET, self.language,
                attempts=self.max_restarts, base_delay=BACKOFF_BASE_SECONDS,
                factor=BACKOFF_FACTOR, max_delay=BACKOFF_CAP_SECONDS,
                sleep=self.sleep, label="speech.recognize",
            )
        except Exception as e:
            self._fail(CaptureError(f"Speech recognition unavailable: {e}"))
            return
        self._segments[index] = text
        logger.debug(f"Recognized chunk {index}: {text!r}")
        if self._on_update and text:
            self._on_update(self.transcript)

    def _fail(self, error: CaptureError) -> None:
        if self.unavailable:
            return
        self.unavailable = True
        logger.error(str(error))
        if self._on_error:
            self._on_error(CAPTURE_UNAVAILABLE)

    async def stop(self) -> None:
        """Flush buffered audio, wait for recognition and report the final transcript."""
        if not self.active:
            return
        self.active = False
        self.stream.unsubscribe(self._consume)
        if not self.unavailable:
            self._flush()
        pending, self._pending = self._pending, []
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(f"Speech capture stopped: {self.transcript or '(empty)'}")
        if self._on_final:
            self._on_final(self.transcript)
