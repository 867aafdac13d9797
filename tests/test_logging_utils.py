from __future__ import annotations

import logging

from alertcore.logging_utils import setup_console_logging, setup_debug_logging


def test_debug_logging_adds_single_file_handler(tmp_path):
    logger = setup_debug_logging(tmp_path)
    again = setup_debug_logging(tmp_path)

    try:
        assert logger is again
        assert len(logger.handlers) == 1
        assert logger.propagate is False
        logger.info("poll_loop.start")
        logger.handlers[0].flush()
        assert (tmp_path / "logs" / "debug.log").exists()
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)


def test_console_logging_is_idempotent():
    root = logging.getLogger("alertcore")
    before = list(root.handlers)
    try:
        setup_console_logging(logging.WARNING)
        setup_console_logging(logging.WARNING)
        added = [handler for handler in root.handlers if handler not in before]
        assert len(added) <= 1
        assert root.level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(logging.NOTSET)
