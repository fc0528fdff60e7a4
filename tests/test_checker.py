import subprocess
from unittest.mock import patch

import pytest

from ecshell.checker import ConfigChecker
from ecshell.exceptions import DependencyMissing


class TestConfigChecker:
    @patch("ecshell.checker.subprocess.run")
    def test_ssh_present(self, mock_run):
        assert ConfigChecker().validate_all() == {"ssh": True}
        assert mock_run.call_args[0][0] == ["ssh", "-V"]
        ConfigChecker().require_all()

    @patch("ecshell.checker.subprocess.run")
    def test_ssh_missing(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        assert ConfigChecker.check_ssh_client() is False
        with pytest.raises(DependencyMissing, match="ssh"):
            ConfigChecker().require_all()

    @patch("ecshell.checker.subprocess.run")
    def test_ssh_broken(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(1, ["ssh", "-V"])
        assert ConfigChecker.check_ssh_client() is False
