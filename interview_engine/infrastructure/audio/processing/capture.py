"""
Shared media stream and the answer recorder.

The stream is opened once per session and fans every frame out to its
consumers (silence detector, recorder, transcription). Frames are handed out
read-only so no consumer can alter what the others see.
"""
import os
import time
import logging
from typing import Callable, List, Optional, Protocol

import numpy as np

from .processing import stereo_to_mono, remove_dc, resample, normalize_audio, to_pcm16, write_wav
from ....config import SAMPLE_RATE_CAPTURE, SAMPLE_RATE_TARGET, TARGET_RMS
from ....errors import MediaUnavailableError

logger = logging.getLogger("audio_capture")

FrameConsumer = Callable[[np.ndarray], None]


class AudioSource(Protocol):
    """Anything that can push audio frames into a stream."""

    def open(self, push: FrameConsumer) -> None:
        """Start delivering frames. Raises MediaUnavailableError on permission/device failure."""

    def close(self) -> None:
        """Stop delivering frames."""


class SharedMediaStream:
    """Session-scoped fan-out of read-only audio frames."""

    def __init__(self, source: Optional[AudioSource] = None, sample_rate: int = SAMPLE_RATE_CAPTURE):
        self.source = source
        self.sample_rate = sample_rate
        self._consumers: List[FrameConsumer] = []
        self.is_open = False
        self.released = False
        self.frames_pushed = 0

    def subscribe(self, consumer: FrameConsumer) -> None:
        if consumer not in self._consumers:
            self._consumers.append(consumer)

    def unsubscribe(self, consumer: FrameConsumer) -> None:
        if consumer in self._consumers:
            self._consumers.remove(consumer)

    def open(self) -> None:
        """
        Acquire the audio source.

        Raises:
            MediaUnavailableError: If there is no source or it cannot be opened
        """
        if self.is_open:
            return
        if self.released:
            raise MediaUnavailableError("Media stream already released")
        if self.source is None:
            raise MediaUnavailableError("No audio source configured")
        self.source.open(self.push)
        self.is_open = True
        logger.info(f"Media stream opened at {self.sample_rate} Hz")

    def push(self, frame: np.ndarray) -> None:
        """Deliver one frame to every consumer."""
        if self.released:
            return
        frame = np.array(frame, copy=True)
        frame.flags.writeable = False
        self.frames_pushed += 1
        for consumer in list(self._consumers):
            try:
                consumer(frame)
            except Exception as e:
                logger.error(f"Stream consumer failed: {e}")

    def release(self) -> None:
        """Close the source and drop consumers. Safe to call more than once."""
        if self.released:
            return
        self.released = True
        self._consumers.clear()
        if self.is_open and self.source is not None:
            try:
                self.source.close()
            except Exception as e:
                logger.warning(f"Error closing audio source: {e}")
        self.is_open = False
        logger.info("Media stream released")


class WavRecorder:
    """Records the frames of one answer and writes them as a 16 kHz WAV file."""

    def __init__(self,
                 output_dir: str,
                 sr_capture: int = SAMPLE_RATE_CAPTURE,
                 sr_target: int = SAMPLE_RATE_TARGET,
                 target_rms: float = TARGET_RMS):
        self.output_dir = output_dir
        self.sr_capture = sr_capture
        self.sr_target = sr_target
        self.target_rms = target_rms
        self._frames: List[np.ndarray] = []
        self._path: Optional[str] = None
        self.recording = False

    def start(self, question_index: int) -> None:
        timestamp = int(time.time() * 1000)
        self._path = os.path.join(self.output_dir, f"answer{question_index + 1:02d}_{timestamp}.wav")
        self._frames = []
        self.recording = True

    def consume(self, frame: np.ndarray) -> None:
        if self.recording:
            self._frames.append(stereo_to_mono(frame))

    def stop(self) -> Optional[str]:
        """
        Stop recording and write the WAV file.

        Returns:
            Path to the written file, or None if nothing was captured
        """
        if not self.recording:
            return None
        self.recording = False
        frames, self._frames = self._frames, []
        if not frames:
            logger.info("No audio captured for this answer")
            return None

        mono = remove_dc(np.concatenate(frames).astype(np.float32))
        mono = resample(mono, self.sr_capture, self.sr_target)
        mono = normalize_audio(mono, self.target_rms)

        os.makedirs(self.output_dir, exist_ok=True)
        write_wav(self._path, to_pcm16(mono), self.sr_target, channels=1)
        logger.info(f"Recorded {len(mono) / self.sr_target:.1f}s of audio to {self._path}")
        return self._path
