"""Unit tests for logging setup."""

import logging

from certnow.logger import ColoredFormatter, get_logger, setup_logger


def make_record(level: int, message: str) -> logging.LogRecord:
    return logging.LogRecord("certnow", level, __file__, 1, message, None, None)


class TestColoredFormatter:
    """Tests for level name coloring."""

    def test_plain_when_colors_disabled(self):
        formatter = ColoredFormatter(use_colors=False)

        text = formatter.format(make_record(logging.WARNING, "careful"))

        assert "[WARNING] careful" in text
        assert "\033[" not in text

    def test_colors_only_the_level_name(self):
        formatter = ColoredFormatter()
        formatter.use_colors = True

        text = formatter.format(make_record(logging.ERROR, "[ERROR] in message"))

        assert f"[\033[31mERROR{ColoredFormatter.RESET}] [ERROR] in message" in text


class TestSetupLogger:
    """Tests for the global logger."""

    def test_stage_output(self, capsys):
        logger = setup_logger(use_colors=False)

        logger.stage(2, 6, "Checking zone")
        logger.success("Found zone")
        logger.failure("Boom")

        out = capsys.readouterr().out
        assert "--- [2/6] Checking zone ---" in out
        assert "[INFO] [OK] Found zone" in out
        assert "[ERROR] [FAIL] Boom" in out

    def test_get_logger_returns_configured_logger(self):
        logger = setup_logger(verbose=True, use_colors=False)

        assert get_logger() is logger
        assert logger.level == logging.DEBUG

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "certnow.log"
        logger = setup_logger(use_colors=False, log_file=str(log_file))

        logger.info("written to file")
        for handler in logger.handlers:
            handler.flush()

        assert "written to file" in log_file.read_text()
