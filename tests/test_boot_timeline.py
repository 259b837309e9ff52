"""Tests for the boot timeline."""

from blueos_core.utils.boot_timeline import BootTimeline


def test_each_state_lasts_until_the_next():
    timeline = BootTimeline(started_ns=0)
    timeline.transitions = [("priority", 2_000_000), ("settling", 5_000_000), ("complete", 5_500_000)]

    assert timeline.durations_ms() == {"init": 2.0, "priority": 3.0, "settling": 0.5}
    assert timeline.total_ms == 5.5
    assert timeline.current == "complete"


def test_repeated_state_accumulates():
    timeline = BootTimeline(initial_state="waiting", started_ns=0)
    timeline.transitions = [("busy", 1_000_000), ("waiting", 3_000_000), ("busy", 4_000_000)]

    assert timeline.durations_ms() == {"waiting": 2.0, "busy": 2.0}


def test_mark_records_in_order():
    timeline = BootTimeline()

    timeline.mark("bootstrap_done")
    timeline.mark("complete")

    assert [state for state, _ in timeline.transitions] == ["bootstrap_done", "complete"]
    assert timeline.transitions[0][1] <= timeline.transitions[1][1]
    assert timeline.total_ms >= 0
