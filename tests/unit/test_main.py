"""Unit tests for the command line entry point."""

import logging
from pathlib import Path

import pytest

from coderadio.config import CodeRadioConfig
from coderadio.main import build_parser, main, setup_logging


@pytest.mark.unit
class TestArgumentParsing:

    def test_defaults(self):
        args = build_parser().parse_args([])

        assert args.config is None
        assert args.station is None
        assert args.select_station is False
        assert args.volume is None
        assert args.no_logo is False

    def test_station_and_volume(self):
        args = build_parser().parse_args(["--station", "5", "--volume", "3", "--no-logo"])

        assert args.station == "5"
        assert args.volume == 3
        assert args.no_logo is True

    @pytest.mark.parametrize("value", ["10", "-1", "loud"])
    def test_invalid_volume_is_rejected(self, value, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--volume", value])

        assert exc_info.value.code == 2
        assert "Volume must be between 0 and 9" in capsys.readouterr().err

    def test_station_options_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--station", "1", "--select-station"])


@pytest.mark.unit
class TestMain:

    def test_missing_config_exits_with_error(self, temp_data_dir, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(Path(temp_data_dir) / "missing.yaml")])

        assert exc_info.value.code == 1
        assert "Configuration file not found" in capsys.readouterr().err


@pytest.mark.unit
class TestSetupLogging:

    def test_writes_to_configured_file(self, temp_data_dir):
        config_file = Path(temp_data_dir) / "code-radio.yaml"
        config_file.write_text("logging:\n  file_path: logs/code-radio.log\n")
        config = CodeRadioConfig(str(config_file))
        root_logger = logging.getLogger()
        saved_handlers, saved_level = root_logger.handlers[:], root_logger.level

        try:
            setup_logging(config, "DEBUG")
            logging.getLogger("coderadio.test").info("hello from the test")
            for handler in root_logger.handlers:
                handler.flush()

            log_file = Path(temp_data_dir) / "logs" / "code-radio.log"
            assert log_file.exists()
            assert "hello from the test" in log_file.read_text()
        finally:
            for handler in root_logger.handlers:
                handler.close()
            root_logger.handlers[:] = saved_handlers
            root_logger.setLevel(saved_level)
