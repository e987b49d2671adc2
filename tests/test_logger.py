"""Tests for loguru sink setup."""

import pytest
from loguru import logger

from bookworm.config import LoggingSettings
from bookworm.utils.logger import setup_logger


@pytest.fixture(autouse=True)
def restore_logger():
    yield
    logger.remove()


class TestSetupLogger:
    def test_file_sink_creates_log_directory(self, tmp_path):
        log_file = tmp_path / "logs" / "bookworm.log"

        setup_logger(LoggingSettings(file=str(log_file)))
        logger.info("indexed post 12")
        logger.complete()

        assert log_file.parent.is_dir()
        assert "indexed post 12" in log_file.read_text()

    def test_no_file_sink_when_disabled(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        setup_logger(LoggingSettings(file=None))

        assert list(tmp_path.iterdir()) == []

    def test_verbose_prints_debug_to_stderr(self, capsys):
        setup_logger(LoggingSettings(level="WARNING", file=None), verbose=True)
        logger.debug("planner details")

        assert "planner details" in capsys.readouterr().err

    def test_configured_level_filters_console(self, capsys):
        setup_logger(LoggingSettings(level="WARNING", file=None))
        logger.info("routine")
        logger.warning("dropped a bad span")

        err = capsys.readouterr().err
        assert "routine" not in err
        assert "dropped a bad span" in err
