"""Tests for logger setup."""

import logging

from raycloud_alignment.utils.logging import set_package_log_level, setup_logger


def test_setup_logger_does_not_duplicate_handlers():
    first = setup_logger("raycloud_alignment.tests.dup")
    second = setup_logger("raycloud_alignment.tests.dup")
    assert first is second
    assert len(second.handlers) == 1


def test_set_package_log_level(tmp_path):
    logger = setup_logger("raycloud_alignment.tests.level")
    other = setup_logger("elsewhere.tests.level")
    log_file = tmp_path / "logs" / "run.log"
    try:
        set_package_log_level("debug", log_file=str(log_file))
        assert logger.level == logging.DEBUG
        assert other.level == logging.INFO
        assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)

        logger.debug("written to file")
        for handler in logger.handlers:
            handler.flush()
        assert "written to file" in log_file.read_text()
    finally:
        for name, item in list(logging.root.manager.loggerDict.items()):
            if not name.startswith("raycloud_alignment") or not isinstance(item, logging.Logger):
                continue
            for handler in list(item.handlers):
                if isinstance(handler, logging.FileHandler):
                    item.removeHandler(handler)
                    handler.close()
        set_package_log_level(logging.INFO)
