from interview_engine.infrastructure.integrity import IntegrityMonitor
from interview_engine.interview.models import ViolationType
from interview_engine.interview.testing import MockExclusiveDisplay


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_monitor(display=None):
    clock = FakeClock()
    lost, violations = [], []
    monitor = IntegrityMonitor(display=display, clock=clock,
                               on_attention_lost=lost.append, on_violation=violations.append)
    return monitor, clock, lost, violations


def test_tab_switch_counted_immediately_and_timed_on_return():
    monitor, clock, lost, violations = make_monitor()
    monitor.visibility_changed(hidden=True)
    assert monitor.metrics.tab_switches == 1
    assert lost == [ViolationType.TAB_SWITCH]
    assert violations == []

    clock.advance(12.5)
    monitor.visibility_changed(hidden=False)
    assert violations[0].duration == 12.5
    assert monitor.metrics.time_away_seconds == 12.5


def test_repeated_hidden_signal_is_one_violation():
    monitor, _, lost, _ = make_monitor()
    monitor.visibility_changed(True)
    monitor.visibility_changed(True)
    assert monitor.metrics.total_violations == 1
    assert len(lost) == 1


def test_blur_after_tab_switch_is_not_double_counted():
    monitor, _, _, _ = make_monitor()
    monitor.visibility_changed(True)
    monitor.window_blurred()
    assert monitor.metrics.window_blurs == 0
    assert monitor.metrics.total_violations == 1


def test_window_blur_counted():
    monitor, clock, _, violations = make_monitor()
    monitor.window_blurred()
    clock.advance(3)
    monitor.window_focused()
    assert monitor.metrics.window_blurs == 1
    assert violations[0].type == ViolationType.WINDOW_BLUR


def test_fullscreen_exit_only_after_being_fullscreen():
    display = MockExclusiveDisplay()
    monitor, clock, lost, violations = make_monitor(display)
    monitor.fullscreen_changed(False)
    assert monitor.metrics.fullscreen_exits == 0

    assert monitor.request_exclusive_mode()
    assert display.entered == 1
    monitor.fullscreen_changed(False)
    assert lost == [ViolationType.FULLSCREEN_EXIT]

    clock.advance(4)
    monitor.request_exclusive_mode()
    assert violations[0].duration == 4
    assert monitor.metrics.fullscreen_exits == 1


def test_refused_exclusive_mode():
    monitor, _, _, _ = make_monitor(MockExclusiveDisplay(refuse=True))
    assert not monitor.request_exclusive_mode()
    assert not monitor.is_fullscreen
    assert not make_monitor()[0].request_exclusive_mode()


def test_exit_exclusive_mode_is_not_a_violation():
    display = MockExclusiveDisplay()
    monitor, _, lost, _ = make_monitor(display)
    monitor.request_exclusive_mode()
    monitor.exit_exclusive_mode()
    monitor.fullscreen_changed(False)
    assert display.exited == 1
    assert lost == []
    assert monitor.metrics.total_violations == 0


def test_close_finishes_open_absence():
    monitor, clock, _, violations = make_monitor()
    monitor.visibility_changed(True)
    clock.advance(20)
    metrics = monitor.close()
    assert metrics.time_away_seconds == 20
    assert len(violations) == 1
    record = metrics.to_record()
    assert record["tab_switches_count"] == 1
    assert record["violations_log"][0]["type"] == "tab-switch"
    monitor.visibility_changed(True)
    assert metrics.total_violations == 1


def test_hide_after_blur_is_one_absence():
    monitor, clock, lost, violations = make_monitor()
    monitor.window_blurred()
    monitor.visibility_changed(True)
    clock.advance(10)
    monitor.visibility_changed(False)
    monitor.window_focused()

    assert monitor.metrics.total_violations == 1
    assert monitor.metrics.window_blurs == 1
    assert monitor.metrics.tab_switches == 0
    assert lost == [ViolationType.WINDOW_BLUR]
    assert len(violations) == 1
    assert monitor.metrics.time_away_seconds == 10.0


def test_overlapping_absences_accrue_time_away_once():
    display = MockExclusiveDisplay()
    monitor, clock, _, violations = make_monitor(display)
    monitor.request_exclusive_mode()

    monitor.fullscreen_changed(False)
    clock.advance(4)
    monitor.visibility_changed(True)
    clock.advance(6)
    monitor.visibility_changed(False)
    clock.advance(2)
    monitor.request_exclusive_mode()

    assert monitor.metrics.total_violations == 2
    assert [v.duration for v in violations] == [6, 12]
    assert monitor.metrics.time_away_seconds == 12.0
    assert not monitor.away
