"""
Session scoring: overall answer score and integrity score.
"""
import math
from typing import Iterable

from .models import IntegrityMetrics, Response
from ..config import (
    SkippedScorePolicy,
    INTEGRITY_TAB_SWITCH_PENALTY, INTEGRITY_FULLSCREEN_EXIT_PENALTY,
    INTEGRITY_AWAY_PENALTY, INTEGRITY_AWAY_BLOCK_SECONDS,
)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def overall_score(responses: Iterable[Response],
                  policy: SkippedScorePolicy = SkippedScorePolicy.EXCLUDE) -> int:
    """
    Mean response score, rounded half up.

    With EXCLUDE, skipped responses are left out of the mean entirely; with
    COUNT_AS_ZERO they contribute a zero. No scored responses gives 0.
    """
    scores = []
    for response in responses:
        if response.was_skipped:
            if policy == SkippedScorePolicy.COUNT_AS_ZERO:
                scores.append(0)
            continue
        scores.append(response.score)
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


def integrity_score(metrics: IntegrityMetrics) -> int:
    """
    100 minus deductions, clamped to [0, 100].

    Tab switches and window blurs cost 5 each, full-screen exits 10 each, and
    every whole 10 seconds away costs 2.
    """
    deductions = (
        (metrics.tab_switches + metrics.window_blurs) * INTEGRITY_TAB_SWITCH_PENALTY
        + metrics.fullscreen_exits * INTEGRITY_FULLSCREEN_EXIT_PENALTY
        + int(metrics.time_away_seconds // INTEGRITY_AWAY_BLOCK_SECONDS) * INTEGRITY_AWAY_PENALTY
    )
    return max(0, min(100, 100 - deductions))
