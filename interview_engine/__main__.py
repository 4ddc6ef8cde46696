#!/usr/bin/env python3
"""
Main entry point for the interview engine.
Allows running a console session with: python -m interview_engine
"""
import asyncio
import os
import sys

from .config import get_config
from .errors import InterviewEngineError, PersistenceError, ValidationError
from .infrastructure.audio import (
    SharedMediaStream, NullSpeechCapture, GoogleSpeechCapture,
    ConsoleVoiceSynthesis, GoogleVoiceSynthesis,
)
from .infrastructure.audio.hardware import MicrophoneSource
from .infrastructure.data import JsonFileSessionStore
from .infrastructure.execution import CodeExecutionEngine, Judge0Client
from .infrastructure.llm import VertexRestClient
from .interview import SessionController, SessionConfig, ResponseOracle, QuestionSource, Stage
from .interview.events import EventType
from .utils import setup_logging

HELP = "Commands: /skip /pause /resume /end /run /submit /retry /language NAME"


def _flag_value(name: str):
    prefix = f"--{name}="
    for arg in sys.argv[1:]:
        if arg.startswith(prefix):
            return arg[len(prefix):]
    return None


def _int_flag(name: str, default: int) -> int:
    value = _flag_value(name)
    if value is None:
        return default
    try:
        return max(1, int(value))
    except ValueError:
        print(f"❌ Invalid value for --{name}: {value}")
        sys.exit(1)


def _print_events(controller: SessionController) -> None:
    bus = controller.event_bus

    def on_question(event):
        kind = "coding" if event.data["requires_coding"] else "answer"
        print(f"\n❓ Question {event.data['question_index'] + 1} ({kind})")
        if event.data["requires_coding"]:
            print("   Type your code line by line, then /run and /submit.")

    def on_saved(event):
        auto = " (auto-submitted)" if event.data["auto_submitted"] else ""
        print(f"✅ Answer saved{auto} - score {event.data['score']}")

    def on_executed(event):
        stand_in = " [local stand-in]" if event.data["used_stand_in"] else ""
        print(f"🧪 {event.data['passed_count']}/{event.data['total_count']} tests passed{stand_in}")

    def on_paused(event):
        print(f"⏸️  Session paused ({event.data['reason']}). Type /resume or /end.")

    bus.subscribe(EventType.QUESTION_STARTED, on_question)
    bus.subscribe(EventType.RESPONSE_SAVED, on_saved)
    bus.subscribe(EventType.QUESTION_SKIPPED, lambda e: print("⏭️  Question skipped"))
    bus.subscribe(EventType.CODE_EXECUTED, on_executed)
    bus.subscribe(EventType.REVIEW_QUESTION_ASKED,
                  lambda e: print(f"\n🔎 Follow-up {e.data['review_index'] + 1}/{e.data['review_total']}"))
    bus.subscribe(EventType.SESSION_PAUSED, on_paused)
    bus.subscribe(EventType.SESSION_RESUMED, lambda e: print("▶️  Resumed"))
    bus.subscribe(EventType.CAPTURE_DEGRADED, lambda e: print(f"⚠️  Capture degraded: {e.data['reason']}"))
    bus.subscribe(EventType.AUTO_SUBMIT_TRIGGERED, lambda e: print("🔇 Silence detected, submitting..."))


async def _read_lines(queue: asyncio.Queue) -> None:
    loop = asyncio.get_running_loop()
    loop.add_reader(sys.stdin.fileno(), lambda: queue.put_nowait(sys.stdin.readline()))


async def _handle_line(controller: SessionController, line: str, code_lines: list, language: list) -> None:
    stage = controller.state.stage
    command = line.strip()

    if command == "/pause":
        controller.pause("manual")
    elif command == "/resume":
        await controller.resume()
    elif command == "/end":
        await controller.end_interview()
    elif command == "/skip":
        await controller.skip_question()
        code_lines.clear()
    elif command == "/retry":
        await controller.retry_processing()
    elif command.startswith("/language"):
        language[0] = command[len("/language"):].strip() or language[0]
        controller.update_code_draft("\n".join(code_lines), language[0])
        print(f"🔤 Language: {language[0]}")
    elif command == "/run":
        await controller.run_code("\n".join(code_lines), language[0])
    elif command == "/submit":
        if stage == Stage.CODING:
            await controller.submit_code("\n".join(code_lines), language[0])
            code_lines.clear()
        else:
            await controller.submit_answer()
    elif command.startswith("/"):
        print(HELP)
    elif stage == Stage.CODING:
        code_lines.append(line.rstrip("\n"))
        controller.update_code_draft("\n".join(code_lines), language[0])
    elif stage == Stage.CODE_REVIEW:
        await controller.submit_review_answer(command)
    elif stage == Stage.LISTENING:
        await controller.submit_answer(command)
    else:
        print(f"⏳ Not accepting input while {stage.value}")


async def run_session(config, session_config: SessionConfig, use_tts: bool, use_voice: bool,
                      recover: bool = False):
    """Run one console interview session."""
    store = JsonFileSessionStore(os.path.join(config.workdir, "sessions"))

    llm_client = None
    if config.oracle_enabled:
        llm_client = VertexRestClient(
            project=config.google_cloud_project,
            location=config.vertex_location,
            model=config.model_name,
            credentials_json=config.google_application_credentials,
        )
    else:
        print("📝 No Google Cloud project configured; answers get default scores")

    sandbox = None
    if config.sandbox_enabled:
        sandbox = Judge0Client(config.rapidapi_key, api_url=config.judge0_api_url)
    else:
        print("🧪 No RAPIDAPI_KEY set; code runs in the local stand-in")

    if use_voice:
        stream = SharedMediaStream(MicrophoneSource())
        capture = GoogleSpeechCapture(stream, language=config.language_code)
    else:
        stream = SharedMediaStream()
        capture = NullSpeechCapture()

    if use_tts:
        synthesis = GoogleVoiceSynthesis(config.tts_voice, config.tts_speaking_rate, config.language_code)
    else:
        synthesis = ConsoleVoiceSynthesis()

    controller = SessionController(
        store=store,
        oracle=ResponseOracle(llm_client, attempts=config.policy.oracle_attempts),
        question_source=QuestionSource(),
        engine=CodeExecutionEngine(sandbox),
        capture=capture,
        synthesis=synthesis,
        stream=stream,
        policy=config.policy,
        workdir=config.workdir,
        record_answers=use_voice,
    )
    _print_events(controller)

    snapshot = None
    if recover:
        snapshot = await store.find_recoverable_session(session_config.user_id)
        if snapshot is None:
            print("🆕 No unfinished session to resume; starting a new one")
    if snapshot:
        session = await controller.restore(snapshot)
        print(f"♻️  Resuming session {session.id} at question {controller.state.question_index + 1}")
    else:
        await controller.initialize(session_config)
    print(f"🎤 {controller.state.total_questions} questions, {controller.time_remaining // 60} minutes left")
    print(HELP)

    queue: asyncio.Queue = asyncio.Queue()
    await _read_lines(queue)
    code_lines: list = []
    language = ["Python"]
    completed = asyncio.ensure_future(controller.wait_completed())
    try:
        await controller.start()
        if controller.code_draft:
            code_lines.extend(controller.code_draft.splitlines())
            print(f"📄 Restored {len(code_lines)} line(s) of code")
        while not completed.done():
            reader = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({reader, completed}, return_when=asyncio.FIRST_COMPLETED)
            if reader not in done:
                reader.cancel()
                break
            line = reader.result()
            if not line:
                await controller.end_interview()
                break
            if not code_lines and controller.language:
                language[0] = controller.language
            try:
                await _handle_line(controller, line, code_lines, language)
            except PersistenceError as e:
                print(f"❌ Could not save: {e}. Type /retry or /skip.")
            except ValidationError as e:
                print(f"⚠️  {e}")
    finally:
        asyncio.get_running_loop().remove_reader(sys.stdin.fileno())
        result = await controller.end_interview()
        await controller.drain()

    if result:
        print("\n" + "=" * 50)
        print("📊 INTERVIEW COMPLETE")
        print("=" * 50)
        print(f"Overall score:   {result.overall_score}")
        print(f"Integrity score: {result.integrity_score}")
        print(f"Answered: {result.questions_answered}  Skipped: {result.questions_skipped}  "
              f"of {result.total_questions}")
        print(f"Duration: {result.duration_seconds:.0f}s ({result.reason})")
    return result


def main():
    """Command-line interface for a console interview session."""

    # Load configuration from environment
    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    # TTS configuration with explicit flags taking precedence
    if "--text" in sys.argv or "--no-tts" in sys.argv:
        use_tts = False
    elif "--tts" in sys.argv:
        use_tts = True
    else:
        use_tts = config.enable_tts
    use_voice = "--voice" in sys.argv

    session_config = SessionConfig(
        category=_flag_value("category"),
        company=_flag_value("company"),
        target_role=_flag_value("role"),
        domain=_flag_value("domain"),
        duration_minutes=_int_flag("duration", config.session_duration_minutes),
        question_count=_int_flag("questions", config.question_count),
        user_id=_flag_value("user"),
    )

    setup_logging(config.log_file, config.log_level)
    if use_tts:
        print("🔊 TTS Mode: questions are spoken aloud")
    else:
        print("📝 Text Mode: questions are displayed as text only")
    if use_voice:
        print("🎙️  Voice answers: microphone + Google speech recognition")

    try:
        asyncio.run(run_session(config, session_config, use_tts, use_voice, recover="--recover" in sys.argv))
    except InterviewEngineError as e:
        print(f"❌ {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n👋 Interview interrupted")


if __name__ == "__main__":
    main()
