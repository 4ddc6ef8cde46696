"""
Integrity monitor: turns raw focus/visibility/full-screen signals into typed
violations and keeps the session's integrity metrics.
"""
import logging
import time
from typing import Callable, Optional, Protocol

from ...interview.models import IntegrityMetrics, Violation, ViolationType

logger = logging.getLogger("integrity_monitor")

AttentionLostCallback = Callable[[ViolationType], None]
ViolationCallback = Callable[[Violation], None]


class ExclusiveDisplay(Protocol):
    """Host capability for entering and leaving exclusive (full-screen) mode."""

    def enter(self) -> None: ...

    def exit(self) -> None: ...


class IntegrityMonitor:
    """
    Counts a violation as soon as attention is lost, and records its duration
    when attention returns.
    """

    def __init__(self,
                 display: Optional[ExclusiveDisplay] = None,
                 clock: Callable[[], float] = time.time,
                 on_attention_lost: Optional[AttentionLostCallback] = None,
                 on_violation: Optional[ViolationCallback] = None):
        self.display = display
        self.clock = clock
        self.on_attention_lost = on_attention_lost
        self.on_violation = on_violation
        self.metrics = IntegrityMetrics()
        self.active = True
        self.is_fullscreen = False
        # Open absences: violation type -> time it started
        self._away_since = {}
        # Start of the current stretch with at least one absence open
        self._absent_since: Optional[float] = None

    @property
    def away(self) -> bool:
        return bool(self._away_since)

    # -- host signals --------------------------------------------------------

    def visibility_changed(self, hidden: bool) -> None:
        if hidden:
            # Hiding an already blurred window is the same absence
            if ViolationType.WINDOW_BLUR in self._away_since:
                return
            self._leave(ViolationType.TAB_SWITCH)
        else:
            self._return(ViolationType.TAB_SWITCH)

    def window_blurred(self) -> None:
        # A blur that follows a tab switch is the same absence
        if ViolationType.TAB_SWITCH in self._away_since:
            return
        self._leave(ViolationType.WINDOW_BLUR)

    def window_focused(self) -> None:
        self._return(ViolationType.WINDOW_BLUR)

    def fullscreen_changed(self, is_fullscreen: bool) -> None:
        was_fullscreen = self.is_fullscreen
        self.is_fullscreen = is_fullscreen
        if was_fullscreen and not is_fullscreen:
            self._leave(ViolationType.FULLSCREEN_EXIT)
        elif is_fullscreen:
            self._return(ViolationType.FULLSCREEN_EXIT)

    # -- exclusive mode ------------------------------------------------------

    def request_exclusive_mode(self) -> bool:
        """Ask the host to enter full-screen. Returns False if it refused."""
        if self.display is None:
            return False
        try:
            self.display.enter()
        except Exception as e:
            logger.warning(f"Could not enter exclusive mode: {e}")
            return False
        self.fullscreen_changed(True)
        return True

    def exit_exclusive_mode(self) -> None:
        """Leave full-screen without counting a violation."""
        if self.display is None:
            return
        self.active = False
        try:
            self.display.exit()
        except Exception as e:
            logger.warning(f"Could not exit exclusive mode: {e}")
        self.is_fullscreen = False

    # -- bookkeeping ---------------------------------------------------------

    def _leave(self, violation_type: ViolationType) -> None:
        if not self.active or violation_type in self._away_since:
            return
        now = self.clock()
        if not self._away_since:
            self._absent_since = now
        self._away_since[violation_type] = now
        m = self.metrics
        if violation_type == ViolationType.TAB_SWITCH:
            m.tab_switches += 1
        elif violation_type == ViolationType.WINDOW_BLUR:
            m.window_blurs += 1
        else:
            m.fullscreen_exits += 1
        m.total_violations += 1
        logger.warning(f"Attention lost: {violation_type.value} (total violations {m.total_violations})")
        if self.on_attention_lost:
            self.on_attention_lost(violation_type)

    def _return(self, violation_type: ViolationType) -> None:
        started = self._away_since.pop(violation_type, None)
        if started is None:
            return
        now = self.clock()
        duration = max(0.0, now - started)
        violation = Violation(type=violation_type, timestamp=started, duration=duration)
        self.metrics.violations.append(violation)
        if not self._away_since:
            # Overlapping absences count their combined stretch once
            self.metrics.time_away_seconds += max(0.0, now - self._absent_since)
            self._absent_since = None
        logger.info(f"Attention returned after {duration:.1f}s ({violation_type.value})")
        if self.on_violation:
            self.on_violation(violation)

    def close(self) -> IntegrityMetrics:
        """Stop monitoring and close any absence still open."""
        for violation_type in list(self._away_since):
            self._return(violation_type)
        self.active = False
        return self.metrics
