"""
Unit tests for exit codes, the error hierarchy and diagnostics.
"""

import io
import json
import logging

import pytest

from tinyhttp import diagnostics
from tinyhttp.errors import (
    ConfigError,
    ConnectionFatalError,
    DuplicateRouteError,
    ExitCode,
    NonGetRequestError,
    NotFoundRouteMissingError,
    ProcessFatalError,
    SandboxError,
    ScanError,
    SecurityError,
    SocketReadError,
    SocketSetupError,
    TinyHTTPError,
    WeirdRxLengthError,
    WeirdTxLengthError,
)


class TestExitCode:
    def test_numbering_is_stable(self):
        assert ExitCode.OK == 0
        assert ExitCode.SOCKET_FAILED == 1
        assert ExitCode.BIND_FAILED == 2
        assert ExitCode.DONT_USE_ROOT == 7
        assert ExitCode.SYMLINK_IN_WEB_ROOT == 11
        assert ExitCode.FTS_UNUSUAL_FILE == 13
        assert ExitCode.CYCLE_IN_WEB_ROOT == 14
        assert ExitCode.HSEARCH_TABLE_FULL == 19
        assert ExitCode.NON_GET_REQUEST == 22
        assert ExitCode.NOTFOUND_NOT_FOUND == 25
        assert ExitCode.SOCKET_WEIRD_TX_LENGTH == 27

    def test_contiguous(self):
        assert [int(code) for code in ExitCode] == list(range(28))


class TestErrorHierarchy:
    """Every error knows its scope and its exit code."""

    @pytest.mark.parametrize("error,code", [
        (ConfigError("x"), ExitCode.INVALID_NUMERIC_ENV_VAR),
        (SecurityError("x"), ExitCode.DONT_USE_ROOT),
        (SandboxError("x"), ExitCode.SANDBOX_FAILED),
        (SocketSetupError("x"), ExitCode.SOCKET_FAILED),
        (ScanError("x"), ExitCode.FTS_READ_FAILED),
        (DuplicateRouteError("x"), ExitCode.HSEARCH_TABLE_FULL),
    ])
    def test_process_fatal(self, error, code):
        assert isinstance(error, ProcessFatalError)
        assert not isinstance(error, ConnectionFatalError)
        assert error.exit_code == code

    @pytest.mark.parametrize("error,code", [
        (SocketReadError("x"), ExitCode.SOCKET_READ_FAILED),
        (NonGetRequestError("x"), ExitCode.NON_GET_REQUEST),
        (NotFoundRouteMissingError("x"), ExitCode.NOTFOUND_NOT_FOUND),
        (WeirdRxLengthError(1, 5, 10), ExitCode.SOCKET_WEIRD_RX_LENGTH),
        (WeirdTxLengthError(1, 10), ExitCode.SOCKET_WEIRD_TX_LENGTH),
    ])
    def test_connection_fatal(self, error, code):
        assert isinstance(error, ConnectionFatalError)
        assert not isinstance(error, ProcessFatalError)
        assert error.exit_code == code

    def test_exit_code_override(self):
        error = SocketSetupError("bind()", exit_code=ExitCode.BIND_FAILED)
        assert error.exit_code == ExitCode.BIND_FAILED
        assert SocketSetupError.exit_code == ExitCode.SOCKET_FAILED

    def test_os_error_detail_in_message(self):
        error = TinyHTTPError("bind()", os_error=OSError(98, "Address already in use"))
        assert str(error) == "bind(): Address already in use"
        assert error.os_error.errno == 98

    def test_scan_error_carries_path(self):
        error = ScanError("bad", exit_code=ExitCode.SYMLINK_IN_WEB_ROOT, path="/srv/www/x")
        assert error.path == "/srv/www/x"

    def test_length_errors_describe_counts(self):
        assert "got 3 bytes, expected 5..21" in str(WeirdRxLengthError(3, 5, 21))
        assert "sent 4 of 10" in str(WeirdTxLengthError(4, 10))


class TestDiagnostics:
    """Tests for logging setup and the fatal() helper."""

    def test_notice_level_registered(self):
        assert logging.getLevelName(diagnostics.NOTICE) == "NOTICE"
        assert logging.INFO < diagnostics.NOTICE < logging.WARNING

    def test_text_format(self):
        stream = io.StringIO()
        diagnostics.setup_logging("INFO", "text", stream=stream)

        diagnostics.notice("STARTING UP")

        line = stream.getvalue()
        assert "[NOTICE] tinyhttp[" in line
        assert "STARTING UP" in line

    def test_level_filters(self):
        stream = io.StringIO()
        diagnostics.setup_logging("WARNING", "text", stream=stream)

        logging.getLogger("tinyhttp.server").info("hidden")
        logging.getLogger("tinyhttp.server").warning("shown")

        assert "hidden" not in stream.getvalue()
        assert "shown" in stream.getvalue()

    def test_setup_twice_does_not_duplicate(self):
        stream = io.StringIO()
        diagnostics.setup_logging("INFO", "text", stream=stream)
        diagnostics.setup_logging("INFO", "text", stream=stream)

        logging.getLogger("tinyhttp").info("once")

        assert stream.getvalue().count("once") == 1

    def test_json_format(self):
        stream = io.StringIO()
        diagnostics.setup_logging("DEBUG", "json", stream=stream)

        code = diagnostics.fatal(ExitCode.BIND_FAILED, "bind() failed")

        entry = json.loads(stream.getvalue().strip())
        assert code == ExitCode.BIND_FAILED
        assert entry["level"] == "CRITICAL"
        assert entry["logger"] == "tinyhttp"
        assert entry["exit_code"] == 2
        assert entry["message"] == "bind() failed (exit 2 BIND_FAILED)"
        assert "pid" in entry and "thread" in entry

    def test_unknown_level_falls_back_to_info(self):
        diagnostics.setup_logging("CHATTY", "text", stream=io.StringIO())
        assert logging.getLogger("tinyhttp").level == logging.INFO
