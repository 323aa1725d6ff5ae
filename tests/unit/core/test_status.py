from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from core.status import (
    RunLog,
    RunStatus,
    WorkflowStep,
    build_progress,
    build_summary,
    format_connection_stats,
    format_duration,
)


@pytest.fixture
def mock_logger():
    return MagicMock()


@pytest.fixture
def run_log(mock_logger):
    return RunLog(max_entries=3, logger=mock_logger)


class TestRunStatus:

    def test_defaults_are_idle(self):
        status = RunStatus()
        assert status.is_running is False
        assert status.current_step == WorkflowStep.IDLE
        assert status.last_error is None

    def test_updated_returns_new_snapshot(self):
        status = RunStatus()
        running = status.updated(is_running=True, current_step=WorkflowStep.AUTHENTICATING)

        assert status.is_running is False
        assert running.is_running is True
        assert running.current_step == WorkflowStep.AUTHENTICATING

    def test_to_dict_serialises_enum_and_times(self):
        start = datetime(2024, 5, 1, 10, 0, 0)
        data = RunStatus(current_step=WorkflowStep.PROCESSING, start_time=start).to_dict()

        assert data["current_step"] == "processing"
        assert data["start_time"] == "2024-05-01T10:00:00"
        assert data["end_time"] is None


class TestProgressAndSummary:

    def test_build_progress(self):
        progress = build_progress(processed=5, successful=3, max_connections=20)
        assert progress.remaining_connections == 15
        assert progress.percent_complete == 25.0

    def test_build_progress_is_clamped(self):
        assert build_progress(30, 20, 20).percent_complete == 100.0
        assert build_progress(30, 20, 20).remaining_connections == 0
        assert build_progress(3, 1, 0).percent_complete == 0.0

    def test_build_summary(self):
        start = datetime(2024, 5, 1, 10, 0, 0)
        summary = build_summary(start, start + timedelta(seconds=90), processed=4, successful=3, errors=["x: timeout"])

        assert summary.duration_ms == 90000
        assert summary.failed == 1
        assert summary.success_rate == 75.0
        assert summary.errors == ["x: timeout"]

    @pytest.mark.parametrize(
        "milliseconds, expected",
        [(999, "0s"), (45000, "45s"), (90000, "1m 30s"), (3900000, "1h 5m")],
    )
    def test_format_duration(self, milliseconds, expected):
        assert format_duration(milliseconds) == expected

    def test_format_connection_stats(self):
        assert format_connection_stats(3, 4) == "3/4 (75.0%)"
        assert format_connection_stats(0, 0) == "0/0 (0.0%)"


class TestRunLog:

    def test_emit_writes_through_logger(self, run_log, mock_logger):
        entry = run_log.warning("Slow page", url="https://www.linkedin.com/feed/")

        mock_logger.warning.assert_called_once_with("Slow page", url="https://www.linkedin.com/feed/")
        assert entry.level == "warning"
        assert entry.context == {"url": "https://www.linkedin.com/feed/"}

    def test_unknown_level_becomes_info(self, run_log, mock_logger):
        entry = run_log.emit("verbose", "hello")
        assert entry.level == "info"
        mock_logger.info.assert_called_once_with("hello")

    def test_buffer_is_bounded(self, run_log):
        for i in range(5):
            run_log.info(f"message {i}")

        assert [e.message for e in run_log.entries()] == ["message 2", "message 3", "message 4"]

    def test_entries_filter_and_limit(self, run_log):
        run_log.info("one")
        run_log.error("two")
        run_log.info("three")

        assert [e.message for e in run_log.entries(level="info")] == ["one", "three"]
        assert [e.message for e in run_log.entries(limit=1)] == ["three"]
        assert run_log.entries(limit=0) == []

    def test_action_entry(self, run_log):
        entry = run_log.action("Connection request sent to Jane Doe", card_id="jane-doe-1-2")
        assert entry.message == "Action: Connection request sent to Jane Doe"
        assert entry.context["type"] == "action"

    def test_progress_and_summary_entries(self, run_log):
        progress_entry = run_log.progress(build_progress(2, 1, 10))
        assert progress_entry.message.startswith("Progress: 2/10 processed")

        start = datetime(2024, 5, 1, 10, 0, 0)
        summary_entry = run_log.summary(build_summary(start, start + timedelta(seconds=5), 2, 1))
        assert summary_entry.message == "Automation completed: 1/2 (50.0%) connections successful in 5s"
        assert summary_entry.context["type"] == "summary"

    def test_listener_failure_is_isolated(self, run_log, mock_logger):
        received = []

        def broken(entry):
            raise RuntimeError("listener crashed")

        run_log.subscribe(broken)
        run_log.subscribe(received.append)
        run_log.info("hello")

        assert [e.message for e in received] == ["hello"]
        mock_logger.warning.assert_called_once()

    def test_unsubscribe(self, run_log):
        received = []
        unsubscribe = run_log.subscribe(received.append)
        unsubscribe()
        unsubscribe()
        run_log.info("hello")

        assert received == []

    def test_clear(self, run_log):
        run_log.info("hello")
        run_log.clear()
        assert run_log.entries() == []
