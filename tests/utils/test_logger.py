import logging
from unittest.mock import MagicMock

from modguard.util import logger as logger_module
from modguard.util.logger import (
    ColorFormatter,
    PromptToolkitHandler,
    get_log_filepath,
    get_logger,
    handle_exception,
    resolve_log_level,
    setup_logger,
    should_use_color,
)


class DummyStream:
    def isatty(self):
        return True


def test_get_logger_has_console_and_file_handlers():
    logger = get_logger("test_logger")
    assert any(isinstance(h, PromptToolkitHandler) for h in logger.handlers)
    assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    assert logger.propagate is False


def test_setup_logger_idempotent():
    logger1 = setup_logger("test_logger_idem")
    logger2 = setup_logger("test_logger_idem")
    assert logger1 is logger2
    assert len(logger1.handlers) == 2


def test_color_formatter_applies_color():
    formatter = ColorFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)
    formatted = formatter.format(record)
    assert "\033[31m" in formatted and "error occurred" in formatted


def test_should_use_color_true(monkeypatch):
    monkeypatch.setattr("sys.stderr", DummyStream())
    assert should_use_color() is True


def test_log_level_from_environment(monkeypatch):
    monkeypatch.setenv("MODGUARD_LOG_LEVEL", "warning")
    assert resolve_log_level() == logging.WARNING
    monkeypatch.setenv("MODGUARD_LOG_LEVEL", "15")
    assert resolve_log_level() == 15
    monkeypatch.setenv("MODGUARD_LOG_LEVEL", "chatty")
    assert resolve_log_level() == logging.DEBUG


def test_log_filepath_is_shared_and_in_logs_dir():
    path = get_log_filepath()
    assert path == get_log_filepath()
    assert path.parent == logger_module.LOGS_DIR


def test_handle_exception_logs_critical(monkeypatch):
    fake = MagicMock()
    monkeypatch.setattr(logger_module, "get_logger", lambda name: fake)

    try:
        raise RuntimeError("fail")
    except RuntimeError as exc:
        handle_exception(RuntimeError, exc, exc.__traceback__)

    fake.critical.assert_called_once()
    assert fake.critical.call_args.args[0] == "Uncaught exception"
