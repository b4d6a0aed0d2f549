"""
Tests for utility helpers.
"""

import subprocess
from unittest.mock import Mock, patch

import pytest

from env_resync.utils import InvalidPassPathError, PassError, get_pass_value


@pytest.mark.unit
class TestGetPassValue:
    def test_returns_stripped_value(self) -> None:
        with patch("env_resync.utils.subprocess.run", return_value=Mock(stdout="s3cret\n")) as mock_run:
            assert get_pass_value("stores/pg-source") == "s3cret"

        mock_run.assert_called_once_with(["pass", "stores/pg-source"], capture_output=True, text=True, check=True)

    def test_invalid_path_is_rejected_before_running_pass(self) -> None:
        with patch("env_resync.utils.subprocess.run") as mock_run, pytest.raises(ValueError, match="Invalid pass path"):
            get_pass_value("../etc/passwd")

        mock_run.assert_not_called()

    def test_missing_entry(self) -> None:
        error = subprocess.CalledProcessError(1, ["pass"], output="", stderr="Error: x is not in the password store.")

        with patch("env_resync.utils.subprocess.run", side_effect=error), pytest.raises(InvalidPassPathError):
            get_pass_value("stores/x")

    def test_other_failures_raise_pass_error(self) -> None:
        error = subprocess.CalledProcessError(3, ["pass"], output="", stderr="gpg: agent unavailable")

        with patch("env_resync.utils.subprocess.run", side_effect=error), pytest.raises(PassError):
            get_pass_value("stores/x")
