# ABOUTME: In-process tests for the mcpdoctor CLI entry point
# ABOUTME: Report collection is patched out; these cover argument handling and exit codes
import json
from unittest.mock import patch

import pytest

from mcpdoctor.cli import EXIT_FATAL, EXIT_SUCCESS, EXIT_USAGE_ERROR, build_parser, main
from mcpdoctor.errors import PreflightError

FAKE_RESULT = {
    "meta": {"version": "0.1.0"},
    "config_files": [],
    "all_servers_all_tiers": [],
    "effective_servers": [{"name": "alpha", "health": "healthy"}],
    "conflicts": [],
    "settings_audit": [],
    "cli_mcp_list": "(no output)",
    "environment": {},
    "summary": {"total_servers": 1},
}


@pytest.fixture
def no_config(tmp_path, monkeypatch):
    monkeypatch.setenv("MCPDOCTOR_CONFIG", str(tmp_path / "absent.toml"))


class TestParser:
    """Tests for build_parser function."""

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.section == "all"
        assert args.project_dir is None
        assert args.compact is False
        assert args.verbose is False

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "mcpdoctor v" in capsys.readouterr().out


class TestMain:
    """Tests for main function."""

    @patch("mcpdoctor.cli.collect")
    def test_success_prints_json(self, mock_collect, capsys, no_config):
        mock_collect.return_value = FAKE_RESULT

        exit_code = main([])

        assert exit_code == EXIT_SUCCESS
        assert json.loads(capsys.readouterr().out) == FAKE_RESULT

    @patch("mcpdoctor.cli.collect")
    def test_section_projection(self, mock_collect, capsys, no_config):
        mock_collect.return_value = FAKE_RESULT

        main(["--section", "health"])

        output = json.loads(capsys.readouterr().out)
        assert list(output) == ["meta", "effective_servers", "summary"]

    @patch("mcpdoctor.cli.collect")
    def test_unknown_section_prints_everything(self, mock_collect, capsys, no_config):
        mock_collect.return_value = FAKE_RESULT

        assert main(["--section", "everything-please"]) == EXIT_SUCCESS
        assert json.loads(capsys.readouterr().out) == FAKE_RESULT

    @patch("mcpdoctor.cli.collect")
    def test_compact_output(self, mock_collect, capsys, no_config):
        mock_collect.return_value = FAKE_RESULT

        main(["--compact"])

        out = capsys.readouterr().out
        assert out.count("\n") == 1
        assert json.loads(out) == FAKE_RESULT

    @patch("mcpdoctor.cli.collect")
    def test_project_dir_passed_through(self, mock_collect, tmp_path, no_config):
        mock_collect.return_value = FAKE_RESULT

        main(["--project-dir", str(tmp_path)])

        assert mock_collect.call_args.kwargs["project_dir"] == tmp_path.resolve()

    @patch("mcpdoctor.cli.collect")
    def test_bad_project_dir_is_usage_error(self, mock_collect, tmp_path, capsys, no_config):
        """Test a missing --project-dir fails before collection."""
        exit_code = main(["--project-dir", str(tmp_path / "missing")])

        assert exit_code == EXIT_USAGE_ERROR
        error = json.loads(capsys.readouterr().out)["error"]
        assert error["type"] == "usage_error"
        assert "not a directory" in error["message"]
        mock_collect.assert_not_called()

    @patch("mcpdoctor.cli.collect")
    def test_unknown_flag_is_usage_error(self, mock_collect, capsys):
        exit_code = main(["--frobnicate"])

        assert exit_code == EXIT_USAGE_ERROR
        assert json.loads(capsys.readouterr().out)["error"]["type"] == "usage_error"
        mock_collect.assert_not_called()

    @patch("mcpdoctor.cli.collect")
    def test_broken_config_is_fatal(self, mock_collect, tmp_path, capsys):
        """Test an invalid TOML config stops the run."""
        config_file = tmp_path / "config.toml"
        config_file.write_text("[health\n")

        exit_code = main(["--config", str(config_file)])

        assert exit_code == EXIT_FATAL
        error = json.loads(capsys.readouterr().out)["error"]
        assert error["type"] == "preflight_error"
        mock_collect.assert_not_called()

    @patch("mcpdoctor.cli.preflight")
    @patch("mcpdoctor.cli.collect")
    def test_old_python_is_fatal(self, mock_collect, mock_preflight, capsys):
        mock_preflight.side_effect = PreflightError("Python 3.10+ is required, running 3.9.18")

        assert main([]) == EXIT_FATAL
        assert "3.10" in json.loads(capsys.readouterr().out)["error"]["message"]

    @patch("mcpdoctor.cli.collect")
    def test_unexpected_failure_is_fatal(self, mock_collect, capsys, no_config):
        mock_collect.side_effect = RuntimeError("disk on fire")

        exit_code = main([])

        assert exit_code == EXIT_FATAL
        error = json.loads(capsys.readouterr().out)["error"]
        assert error == {"type": "fatal_error", "message": "disk on fire"}
