import pytest

from devtrail.progress import ProgressTracker


class _Sink:
    def __init__(self):
        self.calls = []

    def update_progress(self, value, message=None):
        self.calls.append((value, message))
        return value


def test_three_items_in_sync_window():
    sink = _Sink()
    tracker = ProgressTracker(sink, 25, 90, "PRs")
    tracker.set_total_items(3)
    assert sink.calls[-1] == (25, "Found 3 PRs")

    assert tracker.increment_processed("fix-login-bug") == 46
    assert sink.calls[-1] == (46, "Processing PRs (1/3): fix-login-bug")
    assert tracker.increment_processed() == 68
    assert tracker.increment_processed() == 90


def test_last_item_reaches_window_max_despite_flooring():
    sink = _Sink()
    tracker = ProgressTracker(sink, 25, 90)
    tracker.set_total_items(7)
    values = [tracker.increment_processed() for _ in range(7)]
    assert values == sorted(values)
    assert values[-2] < 90
    assert values[-1] == 90


def test_zero_items_jumps_to_max():
    sink = _Sink()
    tracker = ProgressTracker(sink, 25, 90, "tickets")
    assert tracker.set_total_items(0) == 90
    assert sink.calls == [(90, "No tickets to process")]


def test_extra_increments_never_pass_max():
    sink = _Sink()
    tracker = ProgressTracker(sink, 0, 50)
    tracker.set_total_items(1)
    tracker.increment_processed()
    assert tracker.increment_processed() == 50


def test_invalid_window_rejected():
    with pytest.raises(ValueError):
        ProgressTracker(_Sink(), 60, 40)
