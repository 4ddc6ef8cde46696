"""
Text-to-speech functionality using Google Cloud TTS.
"""
import asyncio
import os
import signal
import sys
import tempfile
import logging
from typing import Callable, Optional, Protocol

from google.cloud import texttospeech

from ....config import TTS_VOICE, TTS_SPEAKING_RATE, DEFAULT_LANGUAGE_CODE, SAMPLE_RATE_TARGET

logger = logging.getLogger("speech_tts")

SpeakingCallback = Callable[[bool], None]


class VoiceSynthesis(Protocol):
    """Speech output capability."""

    def is_supported(self) -> bool: ...

    async def speak(self, text: str, on_speaking_change: Optional[SpeakingCallback] = None) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...


class ConsoleVoiceSynthesis:
    """Prints instead of speaking (text mode)."""

    def __init__(self, prefix: str = "🤖"):
        self.prefix = prefix

    def is_supported(self) -> bool:
        return True

    async def speak(self, text: str, on_speaking_change: Optional[SpeakingCallback] = None) -> None:
        if not text.strip():
            return
        if on_speaking_change:
            on_speaking_change(True)
        print(f"{self.prefix} {text}")
        if on_speaking_change:
            on_speaking_change(False)

    def pause(self) -> None:
        pass

    def resume(self) -> None:
        pass

    def stop(self) -> None:
        pass


class GoogleVoiceSynthesis:
    """Google Cloud TTS played through aplay/afplay; falls back to printing."""

    def __init__(self,
                 voice: str = TTS_VOICE,
                 speaking_rate: float = TTS_SPEAKING_RATE,
                 language_code: str = DEFAULT_LANGUAGE_CODE):
        self.voice = voice
        self.speaking_rate = speaking_rate
        self.language_code = language_code
        self._client: Optional[texttospeech.TextToSpeechClient] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stopped = False

    def is_supported(self) -> bool:
        return True

    def _synthesize(self, text: str) -> bytes:
        if self._client is None:
            self._client = texttospeech.TextToSpeechClient()
        response = self._client.synthesize_speech(
            input=texttospeech.SynthesisInput(text=text),
            voice=texttospeech.VoiceSelectionParams(language_code=self.language_code, name=self.voice),
            audio_config=texttospeech.AudioConfig(
                audio_encoding=texttospeech.AudioEncoding.LINEAR16,
                sample_rate_hertz=SAMPLE_RATE_TARGET,
                speaking_rate=self.speaking_rate,
            ),
        )
        return response.audio_content

    async def speak(self, text: str, on_speaking_change: Optional[SpeakingCallback] = None) -> None:
        """Synthesize and play text; returns when playback ends or stop() is called."""
        if not text.strip():
            return
        self._stopped = False
        try:
            audio = await asyncio.to_thread(self._synthesize, text)
        except Exception as e:
            logger.error(f"Google TTS failed: {e}")
            print(f"🤖 {text}")
            return
        if self._stopped:
            return

        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as tmp_file:
            wav_path = tmp_file.name
            tmp_file.write(audio)

        player = "afplay" if sys.platform == "darwin" else "aplay"
        if on_speaking_change:
            on_speaking_change(True)
        try:
            self._process = await asyncio.create_subprocess_exec(
                player, wav_path,
                stdout=asyncio.subprocess.DEVNULL, stderr=asyncio.subprocess.DEVNULL,
            )
            await self._process.wait()
        except FileNotFoundError:
            print(f"🤖 {text}")
        finally:
            self._process = None
            if on_speaking_change:
                on_speaking_change(False)
            try:
                os.unlink(wav_path)
            except OSError:
                pass

    def _signal(self, sig) -> None:
        if self._process is not None and self._process.returncode is None:
            try:
                self._process.send_signal(sig)
            except ProcessLookupError:
                pass

    def pause(self) -> None:
        self._signal(signal.SIGSTOP)

    def resume(self) -> None:
        self._signal(signal.SIGCONT)

    def stop(self) -> None:
        self._stopped = True
        self._signal(signal.SIGCONT)
        if self._process is not None and self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
