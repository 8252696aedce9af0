"""
운영 CLI 단위 테스트
"""
from unittest.mock import patch

import pytest

from shopcore import cli


@pytest.mark.unit
class TestRunJobCommand:
    @pytest.mark.parametrize("status,exit_code", [("success", 0), ("partial", 2), ("fail", 2)])
    def test_exit_code_follows_status(self, status, exit_code, capsys):
        with patch.object(cli, "run_job", return_value={"status": status, "processed": 1}) as run_job:
            assert cli.main(["run-job", "--job", "process-orders"]) == exit_code

        run_job.assert_called_once_with("process-orders", trigger="cli")
        assert f'"status": "{status}"' in capsys.readouterr().out

    def test_exception_returns_one(self):
        with patch.object(cli, "run_job", side_effect=RuntimeError("db down")):
            assert cli.main(["run-job", "--job", "full-update"]) == 1

    def test_process_pending_updates_job_is_accepted(self):
        with patch.object(cli, "run_job", return_value={"status": "success", "processed": 0}) as run_job:
            assert cli.main(["run-job", "--job", "process-pending-updates"]) == 0

        run_job.assert_called_once_with("process-pending-updates", trigger="cli")

    def test_unknown_job_is_rejected(self):
        with pytest.raises(SystemExit):
            cli.main(["run-job", "--job", "nope"])

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "run-job" in capsys.readouterr().out
