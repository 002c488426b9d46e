import logging
import sys
from io import StringIO

import pytest

from mediagraph_mcp.core.logging import (
    NOISY_HTTP_LOGGERS,
    HttpRequestLogDowngradeFilter,
    configure_root_logging,
    normalize_log_level,
    set_noisy_http_logger_levels,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
class TestHttpRequestLogDowngradeFilter:
    def setup_method(self) -> None:
        self.stream = StringIO()
        self.handler = logging.StreamHandler(self.stream)
        self.handler.setFormatter(logging.Formatter("%(levelname)s:%(message)s"))
        self.handler.addFilter(HttpRequestLogDowngradeFilter(*NOISY_HTTP_LOGGERS))

    def _emit(self, logger_name: str, level: int, message: str) -> str:
        logger = logging.getLogger(logger_name)
        logger.handlers = [self.handler]
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
        logger.log(level, message)
        self.handler.flush()
        output = self.stream.getvalue()
        self.stream.truncate(0)
        self.stream.seek(0)
        return output

    def test_downgrades_noisy_http_info_logs(self):
        output = self._emit("httpx", logging.INFO, "HTTP Request: POST")
        assert output.startswith("DEBUG:HTTP Request: POST")

    def test_preserves_non_noisy_info_logs(self):
        output = self._emit("mediagraph_mcp.server", logging.INFO, "Server started")
        assert output.startswith("INFO:Server started")

    def test_leaves_noisy_warnings_alone(self):
        output = self._emit("httpcore.connection", logging.WARNING, "connection reset")
        assert output.startswith("WARNING:connection reset")


@pytest.mark.unit
class TestNoisyHttpLoggerLevelSetter:
    def test_sets_warning_by_default(self):
        set_noisy_http_logger_levels("INFO")
        for name in NOISY_HTTP_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_stays_debug_when_global_debug(self):
        set_noisy_http_logger_levels("DEBUG")
        for name in NOISY_HTTP_LOGGERS:
            assert logging.getLogger(name).level == logging.DEBUG


@pytest.mark.unit
class TestNormalizeLogLevel:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("debug", "DEBUG"),
            ("WARNING  # only problems", "WARNING"),
            ("", "INFO"),
            (None, "INFO"),
            ("   ", "INFO"),
            ("chatty", "INFO"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_log_level(raw) == expected


@pytest.mark.unit
class TestConfigureRootLogging:
    def test_installs_single_stderr_handler(self, restore_root_logger):
        configure_root_logging("INFO")
        handler = configure_root_logging("DEBUG")

        assert restore_root_logger.handlers == [handler]
        assert handler.stream is sys.stderr
        assert restore_root_logger.level == logging.DEBUG

    def test_quiets_uvicorn_and_http_clients(self, restore_root_logger):
        configure_root_logging("INFO")

        assert logging.getLogger("uvicorn.error").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_invalid_level_falls_back_to_info(self, restore_root_logger):
        configure_root_logging("LOUD")
        assert restore_root_logger.level == logging.INFO
