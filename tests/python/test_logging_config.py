"""Logging setup: shared handlers, child loggers and log rotation."""

import logging
import logging.handlers

from props_api import logging_config
from props_api.logging_config import LOGGER_NAME, get_logger, setup_logging


def test_module_loggers_are_children_of_props_api():
    assert get_logger("props_api.cache").name == "props_api.cache"
    assert get_logger("scripts.sync").name == "props_api.scripts.sync"
    assert get_logger().name == LOGGER_NAME
    assert get_logger("props_api.cache").parent is logging.getLogger(LOGGER_NAME)


def test_setup_is_repeatable_and_rotates(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_config, "LOG_DIR", tmp_path)
    try:
        setup_logging(debug=False)
        logger = setup_logging(debug=True)

        assert len(logger.handlers) == 2
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == logging_config.LOG_MAX_BYTES
        assert logger.level == logging.DEBUG
        assert logger.propagate is False

        get_logger("props_api.cache").info("[CACHE] hello")
        for handler in logger.handlers:
            handler.flush()
        assert "[CACHE] hello" in (tmp_path / logging_config.LOG_FILE_NAME).read_text()
    finally:
        monkeypatch.undo()
        setup_logging()
