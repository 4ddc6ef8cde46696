import wave

import pytest

from interview_engine.infrastructure.audio.processing import SharedMediaStream, WavRecorder
from interview_engine.infrastructure.audio.speech import CAPTURE_UNAVAILABLE, GoogleSpeechCapture
from interview_engine.interview.testing import MockAudioSource, push_frames, tone_frame


async def no_sleep(_delay):
    return None


class ScriptedRecognizer:
    """Returns the next phrase per call; the first `failures` calls raise."""

    def __init__(self, phrases, failures=0):
        self.phrases = list(phrases)
        self.failures = failures
        self.calls = 0

    def __call__(self, pcm16_bytes, sr_hz, language):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("recognizer offline")
        return self.phrases.pop(0) if self.phrases else ""


def by_length(phrases):
    """Recognizer that answers by chunk size, so concurrent chunks stay deterministic."""
    return lambda pcm16_bytes, sr_hz, language: phrases.get(len(pcm16_bytes), "")


def capture_with(recognizer, max_restarts=5):
    stream = SharedMediaStream(MockAudioSource())
    stream.open()
    capture = GoogleSpeechCapture(stream, chunk_seconds=1.0, max_restarts=max_restarts,
                                  sleep=no_sleep, recognizer=recognizer)
    updates, finals, errors = [], [], []
    capture.start(updates.append, finals.append, errors.append)
    return stream, capture, updates, finals, errors


@pytest.mark.asyncio
async def test_transcript_grows_chunk_by_chunk():
    # A full one-second chunk, then a half chunk flushed on stop (16-bit samples)
    stream, capture, updates, finals, errors = capture_with(by_length({32000: "hello", 16000: "world"}))
    push_frames(stream, tone_frame(), 10)
    push_frames(stream, tone_frame(), 5)
    await capture.stop()

    assert len(updates) == 2
    assert updates[-1] == "hello world"
    assert finals == ["hello world"]
    assert errors == []


@pytest.mark.asyncio
async def test_recognition_is_retried():
    recognizer = ScriptedRecognizer(["retried"], failures=2)
    stream, capture, _, finals, errors = capture_with(recognizer)
    push_frames(stream, tone_frame(), 10)
    await capture.stop()
    assert finals == ["retried"]
    assert recognizer.calls == 3
    assert errors == []


@pytest.mark.asyncio
async def test_exhausted_retries_degrade_capture():
    stream, capture, _, finals, errors = capture_with(ScriptedRecognizer([], failures=100), max_restarts=3)
    push_frames(stream, tone_frame(), 10)
    await capture.stop()
    assert errors == [CAPTURE_UNAVAILABLE]
    assert not capture.is_supported()
    assert finals == [""]


@pytest.mark.asyncio
async def test_paused_capture_drops_frames():
    recognizer = ScriptedRecognizer(["spoken"])
    stream, capture, _, finals, _ = capture_with(recognizer)
    capture.pause()
    push_frames(stream, tone_frame(), 20)
    capture.resume()
    await capture.stop()
    assert recognizer.calls == 0
    assert finals == [""]


def test_recorder_writes_target_rate_wav(tmp_path):
    recorder = WavRecorder(str(tmp_path), sr_capture=48000, sr_target=16000)
    recorder.start(question_index=0)
    for _ in range(10):
        recorder.consume(tone_frame(sample_rate=48000))
    path = recorder.stop()

    assert path.endswith(".wav")
    assert "answer01_" in path
    with wave.open(path, "rb") as wf:
        assert wf.getframerate() == 16000
        assert wf.getnchannels() == 1
        assert wf.getnframes() == 16000


def test_recorder_without_audio_writes_nothing(tmp_path):
    recorder = WavRecorder(str(tmp_path))
    recorder.start(question_index=2)
    assert recorder.stop() is None
    assert recorder.stop() is None
    assert list(tmp_path.iterdir()) == []
