"""
Unit tests for the command-line interface.
"""

import json
import pytest

from agent_conductor.cli import main, parse_arguments
from agent_conductor.utils.config import SystemConfig, set_config


@pytest.fixture(autouse=True)
def offline_config():
    set_config(SystemConfig(log_level="WARNING"))


class TestParseArguments:
    """Test cases for argument parsing."""

    def test_run_arguments(self):
        args = parse_arguments(["run", "crear blog", "--target", "blog", "--session", "s1", "--json"])

        assert args.command_name == "run"
        assert args.text == "crear blog"
        assert args.target == "blog"
        assert args.session == "s1"
        assert args.json is True
        assert args.verbose is False

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            parse_arguments([])


class TestMain:
    """Test cases for the CLI entry point."""

    def test_agents_lists_default_fleet(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["agents"])

        assert exc_info.value.code == 0
        output = capsys.readouterr().out
        assert "BlogAgent" in output
        assert "Active: 3/3" in output

    def test_run_prints_json_result(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "auditoria seo de la portada", "--json"])

        assert exc_info.value.code == 0
        result = json.loads(capsys.readouterr().out)
        assert result["success"] is True
        assert result["agent"] == "SEOAgent"

    def test_run_unknown_target_exits_with_error(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "hola", "--target", "NobodyAgent"])

        assert exc_info.value.code == 1
        assert "TARGET_NOT_FOUND" in capsys.readouterr().err

    def test_verbose_enables_debug_logging(self, mocker):
        configure = mocker.patch("agent_conductor.cli.configure_logging")

        with pytest.raises(SystemExit):
            main(["--verbose", "agents"])

        configure.assert_called_once_with("DEBUG", False)
