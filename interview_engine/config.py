"""
Interview Engine Configuration System
=====================================

This file contains ALL configuration for the proctored interview engine.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


# =============================================================================
# USER SETTINGS - Edit these to customize the interview session
# =============================================================================

# REQUIRED for the AI oracle: set your Google Cloud project
GOOGLE_CLOUD_PROJECT = "your-project-id"  # Change this!
GOOGLE_APPLICATION_CREDENTIALS = None  # Optional: path to credentials JSON

# Optional: RapidAPI key for the remote code sandbox (local stand-in otherwise)
RAPIDAPI_KEY = None

# Session settings
SESSION_DURATION_MINUTES = 30
QUESTION_COUNT = 5
WORKDIR = "./_sessions"

# Speech settings
ENABLE_TTS = True
TTS_VOICE = "en-US-Neural2-F"
TTS_SPEAKING_RATE = 0.9
LANGUAGE_CODE = "en-US"

# Auto-submit after this many seconds of continuous silence
AUTO_SUBMIT_SECONDS = 5.0

# Logging
LOG_FILE = "./_sessions/interview.log"
LOG_LEVEL = "INFO"


class SkippedScorePolicy(str, Enum):
    """How skipped questions enter the overall score."""
    EXCLUDE = "exclude"
    COUNT_AS_ZERO = "count_as_zero"


SKIPPED_SCORE_POLICY = SkippedScorePolicy.EXCLUDE


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# Timers (seconds). None means the host drives the tick itself.
COUNTDOWN_INTERVAL = 1.0
SILENCE_POLL_INTERVAL = 0.1

# Audio capture
SAMPLE_RATE_CAPTURE = 16000
SAMPLE_RATE_TARGET = 16000
CHANNELS = 1
FRAME_MS = 100
TARGET_RMS = 0.06

# Silence detection
SILENCE_CALIBRATION_MS = 1000
SILENCE_RMS_MULTIPLIER = 2.8
SILENCE_ABSOLUTE_RMS_FLOOR = 0.035
SILENCE_HANGOVER_MS = 300
SILENCE_MIN_SPEECH_MS = 250

# Transcription restarts
CAPTURE_MAX_RESTARTS = 5
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_FACTOR = 2.0
BACKOFF_CAP_SECONDS = 8.0

# Oracle / persistence / sandbox retries
ORACLE_ATTEMPTS = 2
PERSISTENCE_ATTEMPTS = 3
SANDBOX_ATTEMPTS = 2

# In-progress snapshots for crash recovery
SNAPSHOT_INTERVAL = 30.0
SNAPSHOT_MAX_AGE_HOURS = 24

# Code execution
TEST_CASE_COUNT = 2
MAX_REVIEW_QUESTIONS = 3
STAND_IN_EXECUTION_MS = 75.0
JUDGE0_API_URL = "https://judge0-ce.p.rapidapi.com/submissions"
JUDGE0_HOST = "judge0-ce.p.rapidapi.com"
SANDBOX_TIMEOUT = 30

LANGUAGE_IDS: Dict[str, int] = {
    "python": 71,
    "javascript": 63,
    "java": 62,
    "c++": 54,
    "c": 50,
    "c#": 51,
    "go": 60,
    "ruby": 72,
    "php": 68,
    "swift": 83,
    "kotlin": 78,
    "rust": 73,
    "typescript": 74,
}

# Scoring
INTEGRITY_TAB_SWITCH_PENALTY = 5
INTEGRITY_FULLSCREEN_EXIT_PENALTY = 10
INTEGRITY_AWAY_PENALTY = 2
INTEGRITY_AWAY_BLOCK_SECONDS = 10
DEFAULT_ANSWER_SCORE = 50
DEFAULT_CODE_QUALITY_SCORE = 50
DEFAULT_EXPLANATION_SCORE = 60

# LLM
VERTEX_LOCATION = "us-central1"
MODEL_NAME = "gemini-2.5-flash-lite"
LLM_TIMEOUT = 60
MAX_OUTPUT_TOKENS = 1024


# =============================================================================
# ENGINE POLICY AND MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class EnginePolicy:
    """Per-session behavior knobs for the session controller."""
    auto_submit_seconds: float = AUTO_SUBMIT_SECONDS
    countdown_interval: Optional[float] = COUNTDOWN_INTERVAL
    silence_poll_interval: Optional[float] = SILENCE_POLL_INTERVAL
    test_case_count: int = TEST_CASE_COUNT
    max_review_questions: int = MAX_REVIEW_QUESTIONS
    snapshot_interval: Optional[float] = SNAPSHOT_INTERVAL
    persistence_attempts: int = PERSISTENCE_ATTEMPTS
    oracle_attempts: int = ORACLE_ATTEMPTS
    skipped_score_policy: SkippedScorePolicy = SKIPPED_SCORE_POLICY
    enable_code_review: bool = True


@dataclass
class Config:
    """Main configuration object."""
    google_cloud_project: Optional[str] = None
    google_application_credentials: Optional[str] = None
    rapidapi_key: Optional[str] = None
    judge0_api_url: str = JUDGE0_API_URL
    session_duration_minutes: int = SESSION_DURATION_MINUTES
    question_count: int = QUESTION_COUNT
    workdir: str = WORKDIR
    enable_tts: bool = ENABLE_TTS
    tts_voice: str = TTS_VOICE
    tts_speaking_rate: float = TTS_SPEAKING_RATE
    language_code: str = LANGUAGE_CODE
    vertex_location: str = VERTEX_LOCATION
    model_name: str = MODEL_NAME
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL
    policy: EnginePolicy = field(default_factory=EnginePolicy)

    @property
    def oracle_enabled(self) -> bool:
        return bool(self.google_cloud_project) and self.google_cloud_project != "your-project-id"

    @property
    def sandbox_enabled(self) -> bool:
        return bool(self.rapidapi_key)


def get_config(require_oracle: bool = False) -> Config:
    """Load configuration."""
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or GOOGLE_APPLICATION_CREDENTIALS

    if require_oracle and project == "your-project-id":
        raise ValueError("Please set GOOGLE_CLOUD_PROJECT in config.py or as environment variable")

    workdir = os.getenv("INTERVIEW_WORKDIR") or WORKDIR
    return Config(
        google_cloud_project=None if project == "your-project-id" else project,
        google_application_credentials=credentials,
        rapidapi_key=os.getenv("RAPIDAPI_KEY") or RAPIDAPI_KEY,
        judge0_api_url=os.getenv("JUDGE0_API_URL") or JUDGE0_API_URL,
        workdir=workdir,
        log_file=os.path.join(workdir, "interview.log"),
        log_level=os.getenv("INTERVIEW_LOG_LEVEL") or LOG_LEVEL,
    )


# Legacy constant name used by the speech adapters
DEFAULT_LANGUAGE_CODE = LANGUAGE_CODE
