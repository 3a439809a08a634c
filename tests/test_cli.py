"""Tests for the CLI entry point."""

from unittest.mock import patch

import pytest
import yaml

from consul_sync.cli import main
from consul_sync.exceptions import KubernetesAPIError

VALID = {"consul": {"address": "http://consul:8500"}, "routes": {"domain_suffix": "k8s.example.io"}}


def _config_file(tmp_path, data=VALID):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(data))
    return str(path)


class TestCLI:
    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert capsys.readouterr().out.startswith("consul-sync ")

    def test_validate_valid_config(self, tmp_path):
        assert main(["--validate", "-c", _config_file(tmp_path)]) == 0

    def test_validate_invalid_config(self, tmp_path):
        assert main(["--validate", "-c", _config_file(tmp_path, {"consul": {}})]) == 1

    def test_missing_config_file(self):
        assert main(["-c", "/nonexistent/config.yaml", "--validate"]) == 1

    def test_config_flag_required(self):
        assert main([]) == 1

    @patch("consul_sync.cli.Daemon")
    def test_once_success(self, MockDaemon, tmp_path):
        MockDaemon.return_value.run_once.return_value = True
        assert main(["--once", "-c", _config_file(tmp_path)]) == 0
        MockDaemon.return_value.run.assert_not_called()

    @patch("consul_sync.cli.Daemon")
    def test_once_failure(self, MockDaemon, tmp_path):
        MockDaemon.return_value.run_once.return_value = False
        assert main(["--once", "-c", _config_file(tmp_path)]) == 1

    @patch("consul_sync.cli.Daemon")
    def test_fatal_startup_error(self, MockDaemon, tmp_path):
        MockDaemon.side_effect = KubernetesAPIError("no credentials")
        assert main(["-c", _config_file(tmp_path)]) == 1

    @patch("consul_sync.cli.Daemon")
    def test_run_returns_zero_on_clean_shutdown(self, MockDaemon, tmp_path):
        assert main(["-c", _config_file(tmp_path)]) == 0
        MockDaemon.return_value.run.assert_called_once()

    @patch("consul_sync.cli.Daemon")
    def test_keyboard_interrupt_is_clean(self, MockDaemon, tmp_path):
        MockDaemon.return_value.run.side_effect = KeyboardInterrupt
        assert main(["-c", _config_file(tmp_path)]) == 0

    @patch("consul_sync.cli.Daemon")
    def test_log_level_override(self, MockDaemon, tmp_path):
        assert main(["--once", "--log-level", "debug", "-c", _config_file(tmp_path)]) == 0
        config = MockDaemon.call_args[0][0]
        assert config.logging.level == "DEBUG"

    def test_once_and_validate_are_exclusive(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["--once", "--validate", "-c", _config_file(tmp_path)])
