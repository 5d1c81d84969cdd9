"""
Unit tests for the hostbus exception hierarchy.
"""

import pytest

from src.core.config.errors import ConfigError, ConfigValidationError
from src.core.exceptions import (
    ErrorSeverity,
    HostbusException,
    InvalidArgumentError,
    ModuleLoadError,
    get_error_severity,
    is_caller_error,
)

pytestmark = pytest.mark.unit


class TestHostbusException:
    def test_defaults(self):
        exc = HostbusException("Dispatcher misconfigured")

        assert exc.details == {}
        assert exc.severity is ErrorSeverity.ERROR
        assert exc.error_code == "HostbusException"
        assert str(exc) == "[HostbusException] Dispatcher misconfigured"

    def test_to_dict(self):
        exc = HostbusException("bad", {"max_listeners": -1}, ErrorSeverity.CRITICAL, "BAD")

        assert exc.to_dict() == {
            "error_type": "HostbusException",
            "error_code": "BAD",
            "message": "bad",
            "details": {"max_listeners": -1},
            "severity": "critical",
        }
        assert "Details: {'max_listeners': -1}" in str(exc)


class TestInvalidArgumentError:
    def test_is_also_a_type_error(self):
        exc = InvalidArgumentError("listener", "must be callable", 42)

        assert isinstance(exc, TypeError)
        assert exc.argument == "listener"
        assert exc.error_code == "INVALID_ARGUMENT"
        assert exc.details == {"argument": "listener", "value_type": "int"}
        assert exc.severity is ErrorSeverity.WARNING

    def test_is_caller_error(self):
        assert is_caller_error(InvalidArgumentError("event_name", "must be a string"))
        assert not is_caller_error(ValueError("x"))


class TestModuleLoadError:
    def test_wraps_original(self):
        original = ImportError("No module named 'plugins.audit'")

        exc = ModuleLoadError("plugins.audit", original)

        assert exc.original_error is original
        assert exc.details["error_type"] == "ImportError"
        assert "plugins.audit" in exc.message


class TestSeverity:
    def test_get_error_severity(self):
        assert get_error_severity(InvalidArgumentError("a", "b")) is ErrorSeverity.WARNING
        assert get_error_severity(RuntimeError()) is ErrorSeverity.ERROR

    def test_config_errors_share_the_hierarchy(self):
        exc = ConfigValidationError("bad value")

        assert isinstance(exc, ConfigError)
        assert isinstance(exc, HostbusException)
