"""
Tests for the logging setup: level prefixes, colors and the log file.
"""

import logging
import os

from shared.logging.logging_setup import ColorLogger, ColoredFormatter, TimezoneFormatter, setup_logging


def _record(level, msg, *args, **attrs):
    record = logging.LogRecord("test", level, __file__, 1, msg, args, None)
    record.__dict__.update(attrs)
    return record


class TestFormatters:
    def test_warning_gets_prefix_without_touching_record(self):
        formatter = TimezoneFormatter("UTC", "%(message)s")
        record = _record(logging.WARNING, "Chat %d not found", 7)

        assert formatter.format(record) == "⚠️ Chat 7 not found"
        assert record.msg == "Chat %d not found"

    def test_info_has_no_prefix(self):
        assert TimezoneFormatter("UTC", "%(message)s").format(_record(logging.INFO, "ok")) == "ok"

    def test_malformed_args_keep_template(self):
        record = _record(logging.INFO, "%d segments", "many")

        assert TimezoneFormatter("UTC", "%(message)s").format(record) == "%d segments"

    def test_color_is_applied_only_when_requested(self):
        formatter = ColoredFormatter("UTC", "%(message)s")

        assert formatter.format(_record(logging.INFO, "done", color="green")) == "\033[32mdone\033[0m"
        assert formatter.format(_record(logging.INFO, "done")) == "done"


class TestColorLogger:
    def test_color_travels_as_extra(self, caplog):
        logger = ColorLogger(logging.getLogger("test.color"))

        with caplog.at_level(logging.INFO, logger="test.color"):
            logger.info("Vectorized %d segments", 3, color="green")

        assert caplog.records[0].getMessage() == "Vectorized 3 segments"
        assert caplog.records[0].color == "green"

    def test_setup_writes_log_file(self, env, restore_root_logger):
        logger = setup_logging("test.setup")
        logger.warning("Chat %d not found", 5)
        for handler in logging.getLogger().handlers:
            handler.flush()

        with open(os.path.join(env, "logs", "app.log"), encoding="utf-8") as log_file:
            assert "⚠️ Chat 5 not found" in log_file.read()
