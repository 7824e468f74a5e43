"""Tests for the per-run request tracker."""

import pytest

from tracker import ApiRequestTracker


class TestProgress:

    def test_empty_tracker_is_ready(self):
        progress = ApiRequestTracker().get_current_progress()
        assert progress.message == "Ready"
        assert progress.total == 0
        assert progress.progress == 0

    def test_processing_then_completed(self):
        tracker = ApiRequestTracker()
        first = tracker.start_request("supervisor", "Planning")
        second = tracker.start_request("content_analyzer", "Analyzing")
        tracker.set_in_progress(first)
        tracker.complete_request(first)

        progress = tracker.get_current_progress()
        assert progress.message == "Processing 1 of 2"
        assert progress.progress == 50

        tracker.set_in_progress(second)
        assert tracker.get_current_progress().current_request.id == second
        tracker.complete_request(second)
        assert tracker.get_current_progress().message == "Completed"

    def test_error_counts_as_finished(self):
        tracker = ApiRequestTracker()
        request_id = tracker.start_request("validator", "Validating")
        tracker.error_request(request_id)

        progress = tracker.get_current_progress()
        assert progress.completed == 1
        assert progress.message == "Completed"
        assert tracker.get_stats()["errors"] == 1
        assert tracker.get_stats()["completed"] == 0

    def test_finished_request_keeps_status(self):
        tracker = ApiRequestTracker()
        request_id = tracker.start_request("validator", "Validating")
        tracker.complete_request(request_id)
        tracker.error_request(request_id)
        assert tracker.get_stats()["errors"] == 0

    def test_ids_are_unique(self):
        tracker = ApiRequestTracker()
        ids = {tracker.start_request("translator", "Translating") for _ in range(5)}
        assert len(ids) == 5

    def test_reset(self):
        tracker = ApiRequestTracker()
        tracker.start_request("translator", "Translating")
        tracker.reset()
        assert tracker.get_stats()["total"] == 0
        assert tracker.get_current_progress().message == "Ready"


class TestCallbacks:

    def test_callback_receives_updates(self):
        updates = []
        tracker = ApiRequestTracker(on_progress=updates.append)
        request_id = tracker.start_request("translator", "Translating")
        tracker.set_in_progress(request_id)
        tracker.complete_request(request_id)
        assert [u.message for u in updates] == ["Processing 0 of 1", "Processing 0 of 1", "Completed"]

    def test_failing_callback_does_not_propagate(self):
        def broken(update):
            raise RuntimeError("display closed")

        tracker = ApiRequestTracker(on_progress=broken)
        request_id = tracker.start_request("translator", "Translating")
        tracker.complete_request(request_id)
        assert tracker.get_stats()["completed"] == 1


class TestTrackContextManager:

    @pytest.mark.asyncio
    async def test_success_marks_completed(self):
        tracker = ApiRequestTracker()
        async with tracker.track("translator", "Translating") as request_id:
            assert tracker.get_current_progress().current_request.id == request_id
        assert tracker.get_stats()["completed"] == 1

    @pytest.mark.asyncio
    async def test_failure_marks_error_and_reraises(self):
        tracker = ApiRequestTracker()
        with pytest.raises(ValueError):
            async with tracker.track("translator", "Translating"):
                raise ValueError("boom")
        stats = tracker.get_stats()
        assert stats["errors"] == 1
        assert stats["in_progress"] == 0
