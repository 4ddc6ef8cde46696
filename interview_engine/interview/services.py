"""
Service classes for the interview engine.
"""
import os
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..infrastructure.audio.processing import SharedMediaStream, SilenceDetector, SilenceWatchdog, WavRecorder
from ..infrastructure.audio.speech import SpeechCapture

logger = logging.getLogger("services")


@dataclass
class CapturedAnswer:
    """What the capture pipeline produced for one spoken answer."""
    transcript: str = ""
    recording_path: Optional[str] = None
    silence_seconds: float = 0.0
    speech_detected: bool = False


class AnswerCaptureService:
    """
    Connects the per-answer consumers of the shared media stream: the silence
    detector, the recorder and speech transcription.
    """

    def __init__(self,
                 stream: SharedMediaStream,
                 detector: SilenceDetector,
                 watchdog: SilenceWatchdog,
                 capture: SpeechCapture,
                 recorder: Optional[WavRecorder] = None,
                 push_silence: bool = False):
        """
        Args:
            stream: Session-wide media stream
            detector: Silence detector fed by the stream
            watchdog: Auto-submit watchdog
            capture: Speech-to-text capability
            recorder: Answer recorder; None disables recording
            push_silence: Feed the watchdog from the detector callback instead
                of the controller's poll timer
        """
        self.stream = stream
        self.detector = detector
        self.watchdog = watchdog
        self.capture = capture
        self.recorder = recorder
        self.active = False
        self._capturing = False
        self._final_transcript = ""
        if push_silence:
            self.detector.add_listener(self._push_silence)

    def _push_silence(self, silence_seconds: float) -> None:
        if self.active:
            self.watchdog.observe(silence_seconds)

    def _on_final(self, transcript: str) -> None:
        self._final_transcript = transcript or ""

    def begin(self,
              question_index: int,
              on_update: Callable[[str], None],
              on_error: Callable[[str], None]) -> None:
        """
        Start capturing the answer to one question.

        Args:
            question_index: Index of the question being answered
            on_update: Called with the growing transcript
            on_error: Called with a non-fatal capture error code
        """
        if self.active:
            logger.warning("Answer capture already running; restarting")
            self.stream.unsubscribe(self.detector.process)
        self.active = True
        self._final_transcript = ""
        self.detector.reset()
        self.detector.unfreeze()
        self.stream.subscribe(self.detector.process)
        if self.recorder is not None:
            self.recorder.start(question_index)
            self.stream.subscribe(self.recorder.consume)
        self._capturing = self.capture.is_supported()
        if self._capturing:
            self.capture.start(on_update, self._on_final, on_error)
        self.watchdog.arm()
        logger.info(f"Listening for answer {question_index + 1}")

    async def finish(self) -> CapturedAnswer:
        """Stop every consumer and collect the answer."""
        if not self.active:
            return CapturedAnswer()
        self.active = False
        self.watchdog.disarm()
        self.stream.unsubscribe(self.detector.process)

        recording_path = None
        if self.recorder is not None:
            self.stream.unsubscribe(self.recorder.consume)
            recording_path = self.recorder.stop()

        if self._capturing:
            self._capturing = False
            await self.capture.stop()

        return CapturedAnswer(
            transcript=self._final_transcript.strip(),
            recording_path=recording_path,
            silence_seconds=self.detector.silence_seconds,
            speech_detected=self.detector.speech_detected,
        )

    def pause(self) -> None:
        """Freeze silence measurement and transcription."""
        self.detector.freeze()
        self.watchdog.suspend()
        self.capture.pause()

    def resume(self) -> None:
        self.detector.unfreeze()
        self.watchdog.resume()
        self.capture.resume()


class SessionWorkspace:
    """Per-session working directory for recordings."""

    def __init__(self, workdir: str):
        self.workdir = workdir

    def create(self, session_id: str) -> str:
        """
        Create the session directory.

        Returns:
            Path of the directory
        """
        session_dir = os.path.join(self.workdir, f"session_{session_id}")
        os.makedirs(session_dir, exist_ok=True)
        return session_dir
