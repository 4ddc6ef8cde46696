"""
Silence detection and the auto-submit watchdog.

SilenceDetector consumes read-only audio frames and keeps a running count of
uninterrupted silence. Time is measured in stream samples, not wall-clock,
so the same audio always yields the same result.
"""
import logging
from typing import Callable, List, Optional

import numpy as np

from .processing import frame_rms, stereo_to_mono
from ....config import (
    SAMPLE_RATE_CAPTURE, SILENCE_CALIBRATION_MS, SILENCE_RMS_MULTIPLIER,
    SILENCE_ABSOLUTE_RMS_FLOOR, SILENCE_HANGOVER_MS, SILENCE_MIN_SPEECH_MS,
    AUTO_SUBMIT_SECONDS,
)

logger = logging.getLogger("silence_detector")

SilenceListener = Callable[[float], None]


class SilenceDetector:
    """RMS speech/silence classifier with noise-floor calibration and hangover."""

    def __init__(self,
                 sample_rate: int = SAMPLE_RATE_CAPTURE,
                 calibration_ms: int = SILENCE_CALIBRATION_MS,
                 rms_multiplier: float = SILENCE_RMS_MULTIPLIER,
                 absolute_rms_floor: float = SILENCE_ABSOLUTE_RMS_FLOOR,
                 hangover_ms: int = SILENCE_HANGOVER_MS,
                 min_speech_ms: int = SILENCE_MIN_SPEECH_MS):
        self.sample_rate = sample_rate
        self.rms_multiplier = rms_multiplier
        self.absolute_rms_floor = absolute_rms_floor
        self._calibration_samples = int(sample_rate * calibration_ms / 1000)
        self._hangover_samples = int(sample_rate * hangover_ms / 1000)
        self._min_speech_samples = int(sample_rate * min_speech_ms / 1000)

        self._listeners: List[SilenceListener] = []
        self._samples = 0
        self._calibration_rms: List[float] = []
        self._calibrated_samples = 0
        self.noise_floor: Optional[float] = None
        self._frozen = False
        self.reset()

    # -- listeners -----------------------------------------------------------

    def add_listener(self, listener: SilenceListener) -> None:
        """Call listener(silence_seconds) after every processed frame."""
        self._listeners.append(listener)

    def remove_listener(self, listener: SilenceListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # -- state ---------------------------------------------------------------

    @property
    def calibrated(self) -> bool:
        return self.noise_floor is not None

    @property
    def threshold(self) -> float:
        """RMS above which a frame counts as loud."""
        if self.noise_floor is None:
            return self.absolute_rms_floor
        return max(self.noise_floor * self.rms_multiplier, self.absolute_rms_floor)

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def speech_detected(self) -> bool:
        """Whether any speech onset happened since the last reset."""
        return self._speech_detected

    @property
    def stream_seconds(self) -> float:
        return self._samples / self.sample_rate

    @property
    def silence_seconds(self) -> float:
        if self._speaking:
            return 0.0
        return max(0, self._samples - self._silence_origin) / self.sample_rate

    def reset(self) -> None:
        """Start a new listening window. Calibration is kept."""
        self._speaking = False
        self._speech_detected = False
        self._loud_run_start: Optional[int] = None
        self._last_loud_end = self._samples
        self._silence_origin = self._samples

    def freeze(self) -> None:
        """Ignore incoming frames (session paused); silence stops growing."""
        self._frozen = True

    def unfreeze(self) -> None:
        self._frozen = False

    # -- processing ----------------------------------------------------------

    def process(self, frame: np.ndarray) -> float:
        """
        Classify one frame and update the silence counter.

        Args:
            frame: Mono (n,) or multi-channel (n, channels) samples

        Returns:
            Current silence duration in seconds
        """
        if self._frozen:
            return self.silence_seconds

        mono = stereo_to_mono(frame)
        n = int(mono.shape[0])
        if n == 0:
            return self.silence_seconds
        rms = frame_rms(mono)
        start = self._samples
        self._samples += n

        if not self.calibrated:
            self._calibrate(rms, n)
        elif rms > self.threshold:
            self._on_loud(start)
        else:
            self._on_quiet()

        silence = self.silence_seconds
        for listener in list(self._listeners):
            try:
                listener(silence)
            except Exception as e:
                logger.error(f"Silence listener failed: {e}")
        return silence

    def _calibrate(self, rms: float, n: int) -> None:
        self._calibration_rms.append(rms)
        self._calibrated_samples += n
        if self._calibrated_samples >= self._calibration_samples:
            self.noise_floor = float(np.mean(self._calibration_rms))
            logger.info(f"Noise floor calibrated: {self.noise_floor:.4f} (threshold {self.threshold:.4f})")

    def _on_loud(self, frame_start: int) -> None:
        if self._loud_run_start is None:
            self._loud_run_start = frame_start
        self._last_loud_end = self._samples
        if not self._speaking and self._samples - self._loud_run_start >= self._min_speech_samples:
            self._speaking = True
            self._speech_detected = True
            logger.debug(f"Speech onset at {self._loud_run_start / self.sample_rate:.2f}s")

    def _on_quiet(self) -> None:
        self._loud_run_start = None
        if self._speaking and self._samples - self._last_loud_end >= self._hangover_samples:
            self._speaking = False
            self._silence_origin = self._last_loud_end
            logger.debug(f"Speech ended at {self._last_loud_end / self.sample_rate:.2f}s")


class SilenceWatchdog:
    """
    Fires auto-submit once when silence reaches the threshold.

    countdown = max(0, threshold - silence). Once fired (or disarmed) it stays
    quiet until armed again for the next question.
    """

    def __init__(self,
                 threshold_seconds: float = AUTO_SUBMIT_SECONDS,
                 on_trigger: Optional[Callable[[float], None]] = None):
        self.threshold_seconds = threshold_seconds
        self.on_trigger = on_trigger
        self.armed = False
        self.fired = False
        self.suspended = False
        self.countdown = threshold_seconds

    def arm(self) -> None:
        self.armed = True
        self.fired = False
        self.suspended = False
        self.countdown = self.threshold_seconds

    def disarm(self) -> None:
        self.armed = False

    def suspend(self) -> None:
        self.suspended = True

    def resume(self) -> None:
        self.suspended = False

    def observe(self, silence_seconds: float) -> bool:
        """
        Feed the latest silence value.

        Returns:
            True if this observation fired auto-submit
        """
        if not self.armed or self.fired or self.suspended:
            return False
        self.countdown = max(0.0, self.threshold_seconds - silence_seconds)
        if self.countdown > 0:
            return False
        self.fired = True
        self.armed = False
        logger.info(f"Silence threshold reached ({silence_seconds:.1f}s); auto-submitting")
        if self.on_trigger:
            self.on_trigger(silence_seconds)
        return True
