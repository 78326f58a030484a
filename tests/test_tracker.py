"""Tests for PaneStatusTracker."""

from panewatch.core.models import WorkerStatus
from panewatch.core.tracker import PaneStatusTracker


class TestUpdateStatus:
    def test_first_observation_is_a_change(self):
        tracker = PaneStatusTracker()
        assert tracker.update_status("%1", WorkerStatus.IDLE) is True
        assert tracker.get_record("%1").previous is None

    def test_same_status_twice_reports_change_once(self):
        tracker = PaneStatusTracker()
        tracker.update_status("%1", WorkerStatus.WORKING)
        tracker.update_status("%1", WorkerStatus.IDLE)
        assert tracker.update_status("%1", WorkerStatus.DONE) is True
        assert tracker.update_status("%1", WorkerStatus.DONE) is False

    def test_transition_sets_previous(self):
        tracker = PaneStatusTracker()
        tracker.update_status("%1", WorkerStatus.WORKING)
        tracker.update_status("%1", WorkerStatus.IDLE)

        record = tracker.get_record("%1")
        assert record.current == WorkerStatus.IDLE
        assert record.previous == WorkerStatus.WORKING


class TestChangedPanes:
    def test_only_real_transitions_are_changed(self):
        tracker = PaneStatusTracker()
        tracker.update_status("%1", WorkerStatus.WORKING)
        tracker.update_status("%2", WorkerStatus.WORKING)
        tracker.update_status("%2", WorkerStatus.IDLE)

        assert tracker.get_changed_panes() == ["%2"]

    def test_clear_change_flags(self):
        tracker = PaneStatusTracker()
        tracker.update_status("%1", WorkerStatus.WORKING)
        tracker.update_status("%1", WorkerStatus.DONE)

        tracker.clear_change_flags()

        assert tracker.get_changed_panes() == []
        assert tracker.get_status("%1") == WorkerStatus.DONE


class TestFilters:
    def test_done_and_idle(self):
        tracker = PaneStatusTracker()
        tracker.update_status("%1", WorkerStatus.IDLE)
        tracker.update_status("%2", WorkerStatus.DONE)
        tracker.update_status("%3", WorkerStatus.WORKING)

        assert sorted(tracker.get_done_and_idle_panes()) == ["%1", "%2"]
        assert tracker.get_done_panes() == ["%2"]

    def test_counts_by_status(self):
        tracker = PaneStatusTracker()
        tracker.update_status("%1", WorkerStatus.IDLE)
        tracker.update_status("%2", WorkerStatus.IDLE)
        tracker.update_status("%3", WorkerStatus.WORKING)

        counts = tracker.counts_by_status()
        assert counts[WorkerStatus.IDLE] == 2
        assert counts[WorkerStatus.WORKING] == 1
        assert counts[WorkerStatus.DONE] == 0
        assert tracker.counts_by_status(["%3"])[WorkerStatus.IDLE] == 0

    def test_unknown_pane(self):
        tracker = PaneStatusTracker()
        assert tracker.get_status("%9") is None
        assert "%9" not in tracker
