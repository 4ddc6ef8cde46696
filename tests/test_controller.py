import asyncio
import json

import pytest

from interview_engine.config import EnginePolicy, SkippedScorePolicy
from interview_engine.errors import PersistenceError, UnsupportedLanguageError, ValidationError
from interview_engine.interview import EventType, SessionConfig, Stage
from interview_engine.interview.testing import (
    FailingSessionStore, MockSandboxClient, MockVoiceSynthesis, create_mock_session_setup,
    create_test_questions, push_frames, silence_frame, tone_frame,
)

TEST_CASES_REPLY = json.dumps({"testCases": [
    {"input": "abc", "expectedOutput": "cba", "description": "basic"},
    {"input": "ab", "expectedOutput": "ba", "description": "pair"},
]})
REVERSE = "import sys\nprint(sys.stdin.read()[::-1])"


def answer_reply(score):
    return json.dumps({"score": score, "feedback": "Solid", "strengths": ["Clear"], "improvements": []})


def analysis_reply(score):
    return json.dumps({"correctness": "Correct", "complexity": "O(n)", "codeQuality": "Good",
                       "bestPractices": ["Readable"], "improvements": [], "score": score})


def coding_only():
    return [create_test_questions()[2]]


def reversing_sandbox():
    return MockSandboxClient({"abc": "cba", "ab": "ba"})


def record_events(controller, *event_types):
    events = []
    for event_type in event_types:
        controller.event_bus.subscribe(event_type, events.append)
    return events


async def started(env):
    controller = env["controller"]
    await controller.initialize(env["config"])
    await controller.start()
    return controller


def stored_responses(env):
    store = env["store"]
    return store.sessions[env["controller"].session_id]["responses"]


# -- lifecycle ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_initialize_creates_session_and_acquires_media(setup):
    controller = setup["controller"]
    session = await controller.initialize(setup["config"])
    assert controller.state.stage == Stage.READY
    assert controller.time_remaining == 30 * 60
    assert len(session.questions) == 3
    assert session.id in setup["store"].sessions
    assert setup["source"].opened == 1
    assert controller.media_available

    with pytest.raises(ValidationError):
        await controller.initialize(setup["config"])


@pytest.mark.asyncio
async def test_start_asks_first_question_and_listens(setup):
    events = record_events(setup["controller"], EventType.SESSION_STARTED, EventType.QUESTION_STARTED)
    controller = await started(setup)
    assert controller.state.stage == Stage.LISTENING
    assert controller.current_question.id == "q-intro"
    assert setup["synthesis"].spoken_messages == ["Tell me about yourself."]
    assert setup["display"].entered == 1
    assert setup["capture"].active
    assert [e.event_type for e in events] == [EventType.SESSION_STARTED, EventType.QUESTION_STARTED]


@pytest.mark.asyncio
async def test_initialize_persistence_failure_propagates(workdir):
    env = create_mock_session_setup(workdir=workdir)
    env["store"].fail_next("create_session", times=3)
    with pytest.raises(PersistenceError):
        await env["controller"].initialize(env["config"])
    assert env["controller"].state.stage == Stage.LOADING


# -- spoken answers ----------------------------------------------------------

@pytest.mark.asyncio
async def test_silence_auto_submits_transcript(workdir):
    env = create_mock_session_setup(workdir=workdir, llm_responses=[answer_reply(80)])
    events = record_events(env["controller"], EventType.AUTO_SUBMIT_TRIGGERED, EventType.RESPONSE_SAVED)
    controller = await started(env)

    env["capture"].say("I build backend services.")
    assert controller.transcript == "I build backend services."
    push_frames(env["stream"], silence_frame(), 50)
    await controller.drain()

    assert controller.state.stage == Stage.LISTENING
    assert controller.state.question_index == 1
    saved = stored_responses(env)
    assert len(saved) == 1
    assert saved[0]["auto_submitted"] is True
    assert saved[0]["answer_type"] == "voice"
    assert saved[0]["answer_text"] == "I build backend services."
    assert saved[0]["score"] == 80
    assert [e.event_type for e in events] == [EventType.AUTO_SUBMIT_TRIGGERED, EventType.RESPONSE_SAVED]


@pytest.mark.asyncio
async def test_speech_resets_the_silence_countdown(setup):
    controller = await started(setup)
    push_frames(setup["stream"], silence_frame(), 30)
    push_frames(setup["stream"], tone_frame(), 5)
    push_frames(setup["stream"], silence_frame(), 30)
    await controller.drain()
    assert controller.state.stage == Stage.LISTENING
    assert controller.state.question_index == 0
    assert controller.watchdog.countdown == pytest.approx(2.0)

    push_frames(setup["stream"], silence_frame(), 20)
    await controller.drain()
    assert controller.state.question_index == 1


@pytest.mark.asyncio
async def test_auto_submit_without_speech_records_no_answer(setup):
    controller = await started(setup)
    push_frames(setup["stream"], silence_frame(), 50)
    await controller.drain()

    saved = stored_responses(setup)[0]
    assert saved["answer_text"] == "No answer provided"
    assert saved["score"] == 0
    assert saved["was_skipped"] is False
    # No oracle call for an empty answer
    assert setup["llm_client"].request_history == []
    assert controller.state.answered == 1


@pytest.mark.asyncio
async def test_polled_silence_mode(workdir):
    policy = EnginePolicy(countdown_interval=None, silence_poll_interval=3600, snapshot_interval=None,
                          enable_code_review=False)
    env = create_mock_session_setup(workdir=workdir, policy=policy)
    controller = await started(env)

    push_frames(env["stream"], silence_frame(), 60)
    await controller.drain()
    assert controller.state.stage == Stage.LISTENING

    assert controller.poll_silence()
    await controller.drain()
    assert controller.state.question_index == 1
    await controller.end_interview()


@pytest.mark.asyncio
async def test_typed_answer(workdir):
    env = create_mock_session_setup(workdir=workdir, llm_responses=[answer_reply(72)])
    controller = await started(env)
    response = await controller.submit_answer("  I like distributed systems.  ")

    assert response.text == "I like distributed systems."
    assert response.kind.value == "text"
    assert response.score == 72
    assert response.id is not None
    assert controller.state.question_index == 1
    assert "I like distributed systems." in env["llm_client"].request_history[0]["prompt"]
    assert env["store"].calls_to("update_session_progress")[-1][2:] == (1, 0)


@pytest.mark.asyncio
async def test_submit_live_transcript(setup):
    controller = await started(setup)
    setup["capture"].say("First point.")
    setup["capture"].say("Second point.")
    response = await controller.submit_answer()
    assert response.kind.value == "voice"
    assert response.transcript == "First point. Second point."
    assert response.score == 50


@pytest.mark.asyncio
async def test_empty_answers_are_rejected(setup):
    controller = await started(setup)
    with pytest.raises(ValidationError):
        await controller.submit_answer("   ")
    with pytest.raises(ValidationError):
        await controller.submit_answer()
    assert controller.state.stage == Stage.LISTENING
    assert setup["store"].calls_to("save_response") == []


@pytest.mark.asyncio
async def test_wrong_stage_actions_are_rejected(setup):
    controller = await started(setup)
    with pytest.raises(ValidationError):
        await controller.run_code("print(1)", "Python")
    with pytest.raises(ValidationError):
        await controller.submit_code("print(1)", "Python")
    with pytest.raises(ValidationError):
        await controller.submit_review_answer("It is linear")
    assert controller.state.stage == Stage.LISTENING


@pytest.mark.asyncio
async def test_skip_question(setup):
    events = record_events(setup["controller"], EventType.QUESTION_SKIPPED)
    controller = await started(setup)
    response = await controller.skip_question()

    assert response.was_skipped
    assert response.score == 0
    assert controller.state.skipped == 1
    assert controller.state.answered == 0
    assert controller.state.question_index == 1
    assert stored_responses(setup)[0]["was_skipped"] is True
    assert len(events) == 1


@pytest.mark.asyncio
async def test_skip_second_of_three_saves_zero_without_scoring(workdir):
    env = create_mock_session_setup(workdir=workdir, llm_responses=[answer_reply(75)])
    controller = await started(env)
    await controller.submit_answer("I build backend services.")
    assert len(env["llm_client"].request_history) == 1

    response = await controller.skip_question()

    assert response.was_skipped
    assert response.score == 0
    assert response.order == 2
    assert controller.state.skipped == 1
    assert controller.state.question_index == 2
    assert controller.state.stage == Stage.CODING
    assert controller.current_question.id == "q-coding"
    assert len(env["llm_client"].request_history) == 1
    saved = stored_responses(env)
    assert [r["was_skipped"] for r in saved] == [False, True]
    assert saved[1]["score"] == 0


@pytest.mark.asyncio
async def test_skip_while_question_is_spoken_asks_next_question(setup):
    controller = setup["controller"]
    synthesis = MockVoiceSynthesis(delay=0.05)
    controller.synthesis = synthesis
    await controller.initialize(setup["config"])

    starting = asyncio.ensure_future(controller.start())
    await asyncio.sleep(0.01)
    assert controller.state.stage == Stage.QUESTION
    await controller.skip_question()
    await starting

    assert controller.state.question_index == 1
    assert controller.state.stage == Stage.LISTENING
    assert controller.state.skipped == 1
    assert synthesis.spoken_messages == [
        "Tell me about yourself.",
        "Describe a time you disagreed with a teammate.",
    ]


@pytest.mark.asyncio
async def test_null_oracle_score_saves_default(setup):
    setup["llm_client"].mock_responses = ['{"score": null, "feedback": "?"}']
    controller = await started(setup)
    response = await controller.submit_answer("I build backend services.")
    assert response.score == 50
    assert controller.state.question_index == 1
    assert stored_responses(setup)[0]["score"] == 50


# -- coding ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_coding_question_run_then_submit(workdir):
    env = create_mock_session_setup(
        workdir=workdir, questions=coding_only(), sandbox=reversing_sandbox(),
        llm_responses=[TEST_CASES_REPLY, analysis_reply(88)],
    )
    events = record_events(env["controller"], EventType.CODE_EXECUTED, EventType.SESSION_COMPLETED)
    controller = await started(env)
    assert controller.state.stage == Stage.CODING
    assert not env["capture"].active

    with pytest.raises(ValidationError):
        await controller.submit_code(REVERSE, "Python")

    report = await controller.run_code(REVERSE, "Python")
    assert report.passed
    assert not report.used_stand_in
    assert controller.state.stage == Stage.CODING
    assert controller.state.execution_count == 1

    response = await controller.submit_code(REVERSE, "Python")
    assert response.score == 88
    assert response.execution is report
    assert "Complexity: O(n)" in response.feedback
    # The unchanged code is not executed a second time
    assert len(env["sandbox"].calls) == 2

    assert controller.state.is_completed
    assert controller.result.overall_score == 88
    assert controller.result.reason == "all_questions_answered"
    saved = stored_responses(env)[0]
    assert saved["answer_type"] == "code"
    assert len(saved["execution_results"]) == 1
    assert saved["execution_results"][0]["passed_count"] == 2
    assert [e.event_type for e in events] == [EventType.CODE_EXECUTED, EventType.SESSION_COMPLETED]


@pytest.mark.asyncio
async def test_changed_code_is_executed_again_on_submit(workdir):
    env = create_mock_session_setup(
        workdir=workdir, questions=coding_only(), sandbox=reversing_sandbox(),
        llm_responses=[TEST_CASES_REPLY, analysis_reply(60)],
    )
    controller = await started(env)
    await controller.run_code("print('draft')", "Python")
    response = await controller.submit_code(REVERSE, "Python")
    assert len(env["sandbox"].calls) == 4
    assert response.code == REVERSE
    # Test cases are generated once per question
    assert len(env["llm_client"].request_history) == 2


@pytest.mark.asyncio
async def test_run_code_validation(workdir):
    env = create_mock_session_setup(workdir=workdir, questions=coding_only())
    controller = await started(env)
    with pytest.raises(ValidationError):
        await controller.run_code("   ", "Python")
    with pytest.raises(UnsupportedLanguageError):
        await controller.run_code("print(1)", "Cobol")
    assert controller.state.stage == Stage.CODING
    assert controller.state.execution_count == 0


@pytest.mark.asyncio
async def test_sandbox_outage_uses_stand_in(workdir):
    env = create_mock_session_setup(
        workdir=workdir, questions=coding_only(), sandbox=MockSandboxClient(unavailable=True),
    )
    controller = await started(env)
    report = await controller.run_code(REVERSE, "Python")
    assert report.used_stand_in
    assert report.passed_count == 1
    assert controller.state.execution_count == 1


# -- code review -------------------------------------------------------------

def review_setup(workdir, explanations=2):
    policy = EnginePolicy(countdown_interval=None, silence_poll_interval=None, snapshot_interval=None,
                          enable_code_review=True, max_review_questions=2)
    replies = [
        TEST_CASES_REPLY,
        analysis_reply(70),
        json.dumps({"questions": [
            {"type": "complexity", "question": "What is the complexity?", "expectedConcepts": ["O(n)"]},
            {"type": "edge_cases", "question": "What about empty input?"},
        ]}),
    ] + [json.dumps({"understandingScore": 75, "feedback": "Good"})] * explanations
    return create_mock_session_setup(workdir=workdir, questions=coding_only(), sandbox=reversing_sandbox(),
                                     llm_responses=replies, policy=policy)


@pytest.mark.asyncio
async def test_code_review_follow_ups(workdir):
    env = review_setup(workdir)
    events = record_events(env["controller"], EventType.REVIEW_QUESTION_ASKED)
    controller = await started(env)
    await controller.run_code(REVERSE, "Python")
    await controller.submit_code(REVERSE, "Python")

    assert controller.state.stage == Stage.CODE_REVIEW
    assert controller.current_review_question.text == "What is the complexity?"
    assert env["synthesis"].spoken_messages[-1] == "What is the complexity?"

    review = await controller.submit_review_answer("Linear in the string length.")
    assert review.understanding_score == 75
    assert controller.state.review_index == 1

    await controller.submit_review_answer("It returns an empty string.")
    assert controller.state.is_completed
    assert [e.data["review_index"] for e in events] == [0, 1]

    saved = stored_responses(env)[0]
    assert len(saved["review_responses"]) == 2
    assert saved["review_responses"][0]["review_question"]["question"] == "What is the complexity?"
    assert len(controller.session.responses[0].review_responses) == 2
    # Review scores do not change the overall score
    assert controller.result.overall_score == 70


@pytest.mark.asyncio
async def test_skip_remaining_review_questions(workdir):
    env = review_setup(workdir, explanations=0)
    controller = await started(env)
    await controller.run_code(REVERSE, "Python")
    await controller.submit_code(REVERSE, "Python")

    assert await controller.skip_question() is None
    assert controller.state.is_completed
    assert controller.state.answered == 1
    assert controller.state.skipped == 0
    assert len(env["store"].calls_to("save_response")) == 1


@pytest.mark.asyncio
async def test_empty_explanation_rejected(workdir):
    env = review_setup(workdir)
    controller = await started(env)
    await controller.run_code(REVERSE, "Python")
    await controller.submit_code(REVERSE, "Python")
    with pytest.raises(ValidationError):
        await controller.submit_review_answer("  ")
    assert controller.state.review_index == 0


# -- pause / resume ----------------------------------------------------------

@pytest.mark.asyncio
async def test_pause_freezes_countdown_and_silence(setup):
    controller = await started(setup)
    controller.tick_countdown()
    assert controller.time_remaining == 1799

    controller.pause()
    assert controller.state.paused
    assert controller.state.stage == Stage.LISTENING
    assert setup["synthesis"].paused == 1
    assert setup["capture"].paused

    for _ in range(10):
        controller.tick_countdown()
    push_frames(setup["stream"], silence_frame(), 80)
    await controller.drain()
    assert controller.time_remaining == 1799
    assert controller.state.question_index == 0

    await controller.resume()
    assert not controller.state.paused
    assert setup["synthesis"].resumed == 1
    controller.tick_countdown()
    assert controller.time_remaining == 1798


@pytest.mark.asyncio
async def test_user_actions_rejected_while_paused(setup):
    controller = await started(setup)
    controller.pause()
    with pytest.raises(ValidationError):
        await controller.submit_answer("An answer")
    with pytest.raises(ValidationError):
        await controller.skip_question()
    assert setup["store"].calls_to("save_response") == []


@pytest.mark.asyncio
async def test_tab_switch_pauses_and_counts_violation(setup):
    events = record_events(setup["controller"], EventType.VIOLATION_DETECTED, EventType.SESSION_PAUSED)
    controller = await started(setup)

    controller.monitor.visibility_changed(hidden=True)
    assert controller.state.paused
    controller.monitor.visibility_changed(hidden=False)
    # Returning does not resume by itself
    assert controller.state.paused

    await controller.resume()
    result = await controller.end_interview()
    assert result.metrics.tab_switches == 1
    assert result.integrity_score == 95
    assert [e.event_type for e in events] == [
        EventType.VIOLATION_DETECTED, EventType.SESSION_PAUSED, EventType.VIOLATION_DETECTED,
    ]
    assert events[0].data["duration"] is None
    assert events[2].data["duration"] is not None


@pytest.mark.asyncio
async def test_fullscreen_exit_pauses_and_resume_reenters(setup):
    controller = await started(setup)
    controller.monitor.fullscreen_changed(False)
    assert controller.state.paused
    await controller.resume()
    assert setup["display"].entered == 2
    assert controller.monitor.metrics.fullscreen_exits == 1
    assert controller.monitor.is_fullscreen


@pytest.mark.asyncio
async def test_answer_recorded_while_paused_waits_for_resume(setup):
    controller = await started(setup)
    evaluate = controller.oracle.evaluate_answer

    async def evaluate_then_pause(question, answer):
        controller.pause("tab-switch")
        return await evaluate(question, answer)

    controller.oracle.evaluate_answer = evaluate_then_pause
    await controller.submit_answer("My answer")

    assert controller.state.paused
    assert controller.state.stage == Stage.QUESTION
    assert controller.state.question_index == 1
    assert len(setup["synthesis"].spoken_messages) == 1

    await controller.resume()
    assert controller.state.stage == Stage.LISTENING
    assert setup["synthesis"].spoken_messages[-1] == "Describe a time you disagreed with a teammate."


# -- persistence failures ----------------------------------------------------

@pytest.mark.asyncio
async def test_save_failure_keeps_processing_until_retry(setup):
    controller = await started(setup)
    setup["store"].fail_next("save_response", times=3)
    with pytest.raises(PersistenceError):
        await controller.submit_answer("An answer")
    assert controller.state.stage == Stage.PROCESSING
    assert stored_responses(setup) == []

    response = await controller.retry_processing()
    assert response.id is not None
    assert len(stored_responses(setup)) == 1
    assert controller.state.stage == Stage.LISTENING
    assert controller.state.question_index == 1


@pytest.mark.asyncio
async def test_transient_save_failure_is_retried(setup):
    controller = await started(setup)
    setup["store"].fail_next("save_response", times=2)
    await controller.submit_answer("An answer")
    assert len(setup["store"].calls_to("save_response")) == 3
    assert len(stored_responses(setup)) == 1


@pytest.mark.asyncio
async def test_progress_failure_does_not_duplicate_response(setup):
    controller = await started(setup)
    setup["store"].fail_next("update_session_progress", times=3)
    with pytest.raises(PersistenceError):
        await controller.submit_answer("An answer")
    await controller.retry_processing()
    assert len(stored_responses(setup)) == 1
    assert controller.state.answered == 1


@pytest.mark.asyncio
async def test_skip_after_failed_save_records_skip(setup):
    controller = await started(setup)
    setup["store"].fail_next("save_response", times=3)
    with pytest.raises(PersistenceError):
        await controller.submit_answer("An answer")

    response = await controller.skip_question()
    assert response.was_skipped
    assert [r["was_skipped"] for r in stored_responses(setup)] == [True]
    assert controller.state.skipped == 1


@pytest.mark.asyncio
async def test_retry_without_pending_answer_is_rejected(setup):
    controller = await started(setup)
    with pytest.raises(ValidationError):
        await controller.retry_processing()


@pytest.mark.asyncio
async def test_auto_submit_save_failure_reports_error(setup):
    events = record_events(setup["controller"], EventType.ERROR_OCCURRED)
    controller = await started(setup)
    setup["store"].fail_next("save_response", times=3)
    push_frames(setup["stream"], silence_frame(), 50)
    await controller.drain()

    assert controller.state.stage == Stage.PROCESSING
    assert events[0].data["error_type"] == "PersistenceError"
    await controller.retry_processing()
    assert controller.state.question_index == 1


# -- degraded capture --------------------------------------------------------

@pytest.mark.asyncio
async def test_media_unavailable_degrades_to_typed_answers(workdir):
    env = create_mock_session_setup(workdir=workdir, media_available=False)
    events = record_events(env["controller"], EventType.CAPTURE_DEGRADED)
    controller = await started(env)

    assert not controller.media_available
    assert len(events) == 1
    assert controller.state.stage == Stage.LISTENING
    response = await controller.submit_answer("Typed instead")
    assert response.kind.value == "text"


@pytest.mark.asyncio
async def test_transcription_failure_reports_degraded(setup):
    events = record_events(setup["controller"], EventType.CAPTURE_DEGRADED)
    controller = await started(setup)
    setup["capture"].fail()
    assert events[0].data["reason"] == "capture-unavailable"
    assert controller.state.stage == Stage.LISTENING


# -- completion --------------------------------------------------------------

@pytest.mark.asyncio
async def test_full_session_scores(workdir):
    env = create_mock_session_setup(
        workdir=workdir, sandbox=reversing_sandbox(),
        llm_responses=[answer_reply(80), TEST_CASES_REPLY, analysis_reply(60)],
    )
    controller = await started(env)
    await controller.submit_answer("About me")
    await controller.skip_question()
    await controller.run_code(REVERSE, "Python")
    await controller.submit_code(REVERSE, "Python")

    result = await controller.wait_completed()
    assert result.overall_score == 70
    assert result.questions_answered == 2
    assert result.questions_skipped == 1
    assert result.integrity_score == 100
    record = env["store"].sessions[controller.session_id]
    assert record["status"] == "completed"
    assert record["overall_score"] == 70
    assert [r["question_order"] for r in record["responses"]] == [1, 2, 3]


@pytest.mark.asyncio
async def test_skipped_count_as_zero_policy(workdir):
    policy = EnginePolicy(countdown_interval=None, silence_poll_interval=None, snapshot_interval=None,
                          enable_code_review=False, skipped_score_policy=SkippedScorePolicy.COUNT_AS_ZERO)
    env = create_mock_session_setup(workdir=workdir, questions=create_test_questions()[:2],
                                    llm_responses=[answer_reply(80)], policy=policy)
    controller = await started(env)
    await controller.submit_answer("About me")
    await controller.skip_question()
    assert controller.result.overall_score == 40


@pytest.mark.asyncio
async def test_countdown_expiry_completes_session(workdir):
    env = create_mock_session_setup(workdir=workdir)
    env["config"] = SessionConfig(question_count=3, duration_minutes=1)
    controller = await started(env)
    for _ in range(60):
        controller.tick_countdown()
    await controller.drain()

    assert controller.state.is_completed
    assert controller.result.reason == "time_expired"
    assert controller.time_remaining == 0
    assert len(env["store"].calls_to("complete_session")) == 1


@pytest.mark.asyncio
async def test_end_interview_is_idempotent_and_releases_resources(setup):
    events = record_events(setup["controller"], EventType.SESSION_COMPLETED)
    controller = await started(setup)
    first = await controller.end_interview()
    second = await controller.end_interview()

    assert first is second
    assert first.reason == "ended_by_user"
    assert len(events) == 1
    assert len(setup["store"].calls_to("complete_session")) == 1
    assert setup["source"].closed == 1
    assert setup["display"].exited == 1
    assert setup["synthesis"].stopped == 1
    assert not setup["capture"].active

    with pytest.raises(ValidationError):
        await controller.submit_answer("Too late")


@pytest.mark.asyncio
async def test_completion_save_failure(setup):
    events = record_events(setup["controller"], EventType.SESSION_COMPLETED)
    controller = await started(setup)
    setup["store"].fail_next("complete_session", times=3)
    with pytest.raises(PersistenceError):
        await controller.end_interview()
    assert controller.state.is_completed
    assert controller.result is not None
    assert len(events) == 1


@pytest.mark.asyncio
async def test_metrics_collect_session_events(setup):
    controller = await started(setup)
    await controller.submit_answer("An answer")
    await controller.skip_question()
    await controller.end_interview()
    metrics = controller.metrics.get_metrics()
    assert metrics["sessions_started"] == 1
    assert metrics["responses_saved"] == 1
    assert metrics["questions_skipped"] == 1
    assert metrics["sessions_completed"] == 1


@pytest.mark.asyncio
async def test_expiry_with_failing_store_still_completes(workdir):
    env = create_mock_session_setup(workdir=workdir, store=FailingSessionStore(["complete_session"]))
    env["config"] = SessionConfig(question_count=3, duration_minutes=1)
    events = record_events(env["controller"], EventType.ERROR_OCCURRED, EventType.SESSION_COMPLETED)
    controller = await started(env)
    for _ in range(60):
        controller.tick_countdown()
    await controller.drain()

    assert controller.state.is_completed
    assert controller.result.reason == "time_expired"
    assert [e.event_type for e in events] == [EventType.ERROR_OCCURRED, EventType.SESSION_COMPLETED]
    assert len(env["store"].calls_to("complete_session")) == 3


# -- snapshots and recovery --------------------------------------------------

@pytest.mark.asyncio
async def test_snapshot_captures_progress_and_draft(workdir):
    env = create_mock_session_setup(workdir=workdir, llm_responses=[answer_reply(80)])
    controller = await started(env)
    await controller.submit_answer("About me")
    await controller.skip_question()
    assert controller.language == "Python"
    controller.update_code_draft("print('draft')", "JavaScript")

    snapshot = controller.snapshot()
    assert snapshot["session_id"] == controller.session_id
    assert snapshot["stage"] == "coding"
    assert snapshot["question_index"] == 2
    assert (snapshot["questions_answered"], snapshot["questions_skipped"]) == (1, 1)
    assert snapshot["code_draft"] == "print('draft')"
    assert snapshot["language"] == "JavaScript"
    assert [q["id"] for q in snapshot["questions"]] == ["q-intro", "q-behavioral", "q-coding"]
    assert snapshot["config"]["duration_minutes"] == 30

    assert await controller.save_snapshot()
    stored = env["store"].sessions[controller.session_id]["snapshot"]
    assert stored["code_draft"] == "print('draft')"
    assert stored["last_saved"]


@pytest.mark.asyncio
async def test_snapshot_failure_is_reported_not_raised(workdir):
    env = create_mock_session_setup(workdir=workdir, store=FailingSessionStore(["save_session_state"]))
    events = record_events(env["controller"], EventType.ERROR_OCCURRED)
    controller = await started(env)

    assert await controller.save_snapshot() is False
    assert events[0].data["error_type"] == "PersistenceError"
    assert controller.state.stage == Stage.LISTENING


@pytest.mark.asyncio
async def test_no_snapshot_before_initialize(setup):
    assert await setup["controller"].save_snapshot() is False
    assert setup["store"].calls_to("save_session_state") == []


@pytest.mark.asyncio
async def test_periodic_snapshot_and_clear_on_completion(workdir):
    policy = EnginePolicy(countdown_interval=None, silence_poll_interval=None, snapshot_interval=0.01,
                          enable_code_review=False)
    env = create_mock_session_setup(workdir=workdir, policy=policy)
    controller = await started(env)
    await asyncio.sleep(0.05)
    assert env["store"].calls_to("save_session_state")
    assert "snapshot" in env["store"].sessions[controller.session_id]

    await controller.end_interview()
    assert "snapshot" not in env["store"].sessions[controller.session_id]
    assert len(env["store"].calls_to("clear_session_state")) == 1


@pytest.mark.asyncio
async def test_snapshot_clear_failure_does_not_fail_completion(workdir):
    env = create_mock_session_setup(workdir=workdir, store=FailingSessionStore(["clear_session_state"]))
    controller = await started(env)
    result = await controller.end_interview()
    assert result.reason == "ended_by_user"
    assert env["store"].sessions[controller.session_id]["status"] == "completed"


@pytest.mark.asyncio
async def test_restore_continues_at_saved_question(workdir):
    first = create_mock_session_setup(workdir=workdir, llm_responses=[answer_reply(80)])
    first["config"] = SessionConfig(question_count=3, duration_minutes=30, user_id="u1")
    controller = await started(first)
    await controller.submit_answer("About me")
    first["capture"].say("Once I disagreed about")
    for _ in range(5):
        controller.tick_countdown()
    assert await controller.save_snapshot()

    store = first["store"]
    snapshot = await store.find_recoverable_session("u1")
    assert snapshot["session_id"] == controller.session_id

    second = create_mock_session_setup(workdir=workdir, store=store, llm_responses=[answer_reply(60)])
    restored = second["controller"]
    session = await restored.restore(snapshot)
    assert session.id == controller.session_id
    assert len(session.responses) == 1
    assert restored.state.stage == Stage.READY

    await restored.start()
    assert restored.state.stage == Stage.LISTENING
    assert restored.current_question.id == "q-behavioral"
    assert restored.time_remaining == 30 * 60 - 5
    assert restored.state.answered == 1
    assert restored.transcript == "Once I disagreed about"
    assert second["synthesis"].spoken_messages == ["Describe a time you disagreed with a teammate."]

    response = await restored.submit_answer()
    assert response.order == 2
    assert response.text == "Once I disagreed about"
    assert [r["question_order"] for r in store.sessions[session.id]["responses"]] == [1, 2]


@pytest.mark.asyncio
async def test_restore_moves_past_answers_saved_after_the_snapshot(workdir):
    first = create_mock_session_setup(workdir=workdir, llm_responses=[answer_reply(80)])
    controller = await started(first)
    first["capture"].say("Stale draft")
    snapshot = controller.snapshot()
    await controller.submit_answer("About me")

    second = create_mock_session_setup(workdir=workdir, store=first["store"])
    restored = second["controller"]
    await restored.restore(snapshot)
    await restored.start()
    assert restored.state.question_index == 1
    assert restored.transcript == ""


@pytest.mark.asyncio
async def test_restore_brings_back_code_draft(workdir):
    first = create_mock_session_setup(workdir=workdir, llm_responses=[answer_reply(80)])
    controller = await started(first)
    await controller.submit_answer("About me")
    await controller.skip_question()
    controller.update_code_draft(REVERSE, "Python")
    snapshot = controller.snapshot()

    second = create_mock_session_setup(workdir=workdir, store=first["store"])
    restored = second["controller"]
    await restored.restore(snapshot)
    await restored.start()
    assert restored.state.stage == Stage.CODING
    assert restored.code_draft == REVERSE
    assert restored.language == "Python"
    assert (restored.state.answered, restored.state.skipped) == (1, 1)


@pytest.mark.asyncio
async def test_completed_session_cannot_be_restored(setup):
    controller = await started(setup)
    snapshot = controller.snapshot()
    await controller.end_interview()

    other = create_mock_session_setup(workdir=setup["workdir"], store=setup["store"])
    with pytest.raises(ValidationError):
        await other["controller"].restore(snapshot)
    assert other["controller"].state.stage == Stage.LOADING
