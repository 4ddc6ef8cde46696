"""
PyAudio microphone source for the shared media stream.
"""
import asyncio
import logging
from typing import Callable, Optional

import numpy as np

from ..processing.processing import to_float32
from ....config import SAMPLE_RATE_CAPTURE, CHANNELS, FRAME_MS
from ....errors import MediaUnavailableError

logger = logging.getLogger("microphone")


class MicrophoneSource:
    """Pushes microphone frames into the event loop from PyAudio's callback thread."""

    def __init__(self,
                 input_device: Optional[int] = None,
                 sample_rate: int = SAMPLE_RATE_CAPTURE,
                 num_channels: int = CHANNELS,
                 frame_ms: int = FRAME_MS):
        self.input_device = input_device
        self.sample_rate = sample_rate
        self.num_channels = num_channels
        self.frame_size = int(sample_rate * frame_ms / 1000)
        self._pa = None
        self._stream = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._push: Optional[Callable[[np.ndarray], None]] = None

    def open(self, push: Callable[[np.ndarray], None]) -> None:
        """
        Open the input stream.

        Raises:
            MediaUnavailableError: If PyAudio is missing or the device cannot be opened
        """
        try:
            import pyaudio
        except ImportError as e:
            raise MediaUnavailableError(f"PyAudio not installed: {e}")

        self._loop = asyncio.get_running_loop()
        self._push = push

        logger.info(f"Opening microphone: device={self.input_device} channels={self.num_channels} "
                    f"rate={self.sample_rate} frame={self.frame_size}")
        self._pa = pyaudio.PyAudio()
        try:
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=self.num_channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.input_device,
                frames_per_buffer=self.frame_size,
                stream_callback=self._callback,
            )
            self._stream.start_stream()
        except (OSError, ValueError) as e:
            self._pa.terminate()
            self._pa = None
            raise MediaUnavailableError(f"Failed to open microphone: {e}")
        logger.info("Microphone opened successfully")

    def _callback(self, in_data, frame_count, time_info, status):
        import pyaudio

        samples = np.frombuffer(in_data, dtype=np.int16)
        if self.num_channels > 1:
            samples = samples.reshape(-1, self.num_channels)
        frame = to_float32(samples)
        if self._loop is not None and self._push is not None:
            self._loop.call_soon_threadsafe(self._push, frame)
        return None, pyaudio.paContinue

    def close(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop_stream()
                self._stream.close()
            except OSError as e:
                logger.warning(f"Error closing microphone stream: {e}")
            self._stream = None
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None
        logger.info("Microphone closed")
