"""Tests del runner periódico (recolección + rollup).

Ejecutar:
    pytest tests/test_runner.py -v
"""

import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from jobs.watcher.cli import main
from jobs.watcher.config import RunnerConfig
from jobs.watcher.runner import run_once
from watcher_metrics.rollup.engine import TierResult


@pytest.fixture
def mock_service():
    service = MagicMock()
    service.collect_once = AsyncMock(return_value={"remotes": 1})
    service.run_rollups = MagicMock(return_value={
        "ping": {"1min": TierResult(tier="1min", records=2)},
        "efuse": {"1min": TierResult(tier="1min", error="boom")},
    })
    return service


class TestRunOnce:

    def test_collects_and_rolls_up(self, mock_service):
        summary = run_once(RunnerConfig(sleep_seconds=0, once=True), mock_service)

        mock_service.collect_once.assert_awaited_once()
        mock_service.run_rollups.assert_called_once()
        assert summary["collect"] == {"remotes": 1}
        assert summary["rollup"] == {"records": 2, "failed": ["efuse/1min"]}

    def test_skip_collect(self, mock_service):
        summary = run_once(RunnerConfig(sleep_seconds=0, once=True, skip_collect=True), mock_service)

        mock_service.collect_once.assert_not_awaited()
        assert "collect" not in summary

    def test_skip_rollup(self, mock_service):
        run_once(RunnerConfig(sleep_seconds=0, once=True, skip_rollup=True), mock_service)

        mock_service.run_rollups.assert_not_called()


class TestCli:

    def test_once_runs_single_iteration(self, mock_service):
        with patch.object(sys, "argv", ["watcher-runner", "--once"]), \
                patch("jobs.watcher.cli.WatcherService", return_value=mock_service), \
                patch("jobs.watcher.cli.run_once") as run:
            main()

        assert run.call_count == 1
        cfg = run.call_args[0][0]
        assert cfg.once is True

    def test_once_reraises_errors(self, mock_service):
        with patch.object(sys, "argv", ["watcher-runner", "--once"]), \
                patch("jobs.watcher.cli.WatcherService", return_value=mock_service), \
                patch("jobs.watcher.cli.run_once", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                main()
