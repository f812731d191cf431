"""
Unit tests for the command line tool.
"""

from pathlib import Path

import pytest

from broadcastsync.cli import EXIT_CONFIGURATION, EXIT_OK, build_parser, main


@pytest.mark.unit
@pytest.mark.usefixtures("restore_root_logger")
class TestCli:
    """Tests for the broadcastsync command."""

    def test_parser_requires_command(self):
        """A subcommand is mandatory."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_now_prints_offset_and_plan(self, temp_config_file: Path, capsys):
        """`now` prints the offset and the three-part plan."""
        code = main(["--config", str(temp_config_file), "now", "--timezone", "fixed_reference"])

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "Timezone mode: fixed_reference" in out
        assert "Day offset:" in out
        assert "segmented_three: part p" in out

    def test_check_selects_mode(self, temp_config_file: Path, capsys):
        """`check` reports the mode that would be used."""
        code = main(["--config", str(temp_config_file), "check"])

        assert code == EXIT_OK
        assert "Selected mode: segmented_three" in capsys.readouterr().out

    def test_check_without_sources(self, temp_dir: Path, capsys):
        """No playable source exits with the configuration error code."""
        config_file = temp_dir / "empty.yaml"
        config_file.write_text("logging:\n  level: WARNING\n")

        code = main(["--config", str(config_file), "check"])

        assert code == EXIT_CONFIGURATION
        assert "No playable source" in capsys.readouterr().err

    def test_invalid_timezone_in_config(self, temp_dir: Path, capsys):
        """An unknown timezone mode exits with the configuration error code."""
        config_file = temp_dir / "bad.yaml"
        config_file.write_text("timezone:\n  default_mode: tokyo\n")

        code = main(["--config", str(config_file), "now"])

        assert code == EXIT_CONFIGURATION
        assert "Invalid configuration" in capsys.readouterr().err
