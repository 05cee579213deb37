import logging
from logging.handlers import RotatingFileHandler

from rootshare import config
from rootshare.logger_config import _console_level, setup_logger


def test_setup_logger_attaches_handlers_once():
    logger = setup_logger()
    assert setup_logger() is logger
    assert len(logger.handlers) == 2
    assert not logger.propagate


def test_file_handler_rotates_and_keeps_debug():
    logger = setup_logger()
    file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].level == logging.DEBUG
    assert file_handlers[0].maxBytes == config.LOG_MAX_BYTES
    assert file_handlers[0].backupCount == config.LOG_BACKUP_COUNT


def test_console_level_from_config(monkeypatch):
    monkeypatch.setattr(config, "LOG_LEVEL", "WARNING")
    assert _console_level() == logging.WARNING
    monkeypatch.setattr(config, "LOG_LEVEL", "LOUD")
    assert _console_level() == logging.INFO
