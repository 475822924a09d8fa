"""Test logging setup and teardown"""

import io
import logging

import pytest

from audio_vault.core.logger import (
    LOG_ERRORS_PREFIX,
    LOG_FULL_PREFIX,
    ErrorOnlyFilter,
    TqdmLoggingHandler,
    get_logger,
    setup_logging,
    shutdown_logging,
)


@pytest.fixture
def restore_root_handlers():
    root_logger = logging.getLogger()
    saved = root_logger.handlers[:]
    saved_level = root_logger.level
    yield
    shutdown_logging()
    for handler in saved:
        root_logger.addHandler(handler)
    root_logger.setLevel(saved_level)


class TestSetupLogging:
    """Test handler installation and log files"""

    def test_console_only(self, restore_root_handlers):
        setup_logging(None)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], TqdmLoggingHandler)
        assert handlers[0].level == logging.INFO

    def test_verbose_console(self, restore_root_handlers):
        setup_logging(None, verbose=True)
        assert logging.getLogger().handlers[0].level == logging.DEBUG

    def test_log_files(self, tmp_path, restore_root_handlers):
        log_dir = tmp_path / "logs"
        setup_logging(log_dir)

        logger = get_logger("audio_vault.test")
        logger.info("export started")
        logger.error("export failed")
        shutdown_logging()

        full_logs = list(log_dir.glob(f"{LOG_FULL_PREFIX}_*.log"))
        error_logs = list(log_dir.glob(f"{LOG_ERRORS_PREFIX}_*.log"))
        assert len(full_logs) == 1
        assert len(error_logs) == 1

        full_text = full_logs[0].read_text(encoding="utf-8")
        error_text = error_logs[0].read_text(encoding="utf-8")
        assert "export started" in full_text
        assert "export failed" in full_text
        assert "export started" not in error_text
        assert "export failed" in error_text

    def test_quiets_http_loggers(self, restore_root_handlers):
        setup_logging(None, verbose=True)
        assert logging.getLogger("urllib3").level == logging.WARNING


class TestShutdownLogging:

    def test_removes_handlers_and_is_repeatable(self, tmp_path, restore_root_handlers):
        setup_logging(tmp_path)
        assert len(logging.getLogger().handlers) == 3

        shutdown_logging()
        shutdown_logging()

        assert logging.getLogger().handlers == []


class TestHandlers:

    def test_error_only_filter(self):
        error_filter = ErrorOnlyFilter()
        make = lambda level: logging.LogRecord("x", level, __file__, 1, "msg", None, None)

        assert not error_filter.filter(make(logging.WARNING))
        assert error_filter.filter(make(logging.ERROR))
        assert error_filter.filter(make(logging.CRITICAL))

    def test_tqdm_handler_writes_to_stream(self):
        stream = io.StringIO()
        handler = TqdmLoggingHandler(stream)
        handler.setFormatter(logging.Formatter("%(message)s"))

        handler.emit(logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None))

        assert stream.getvalue() == "hello\n"
