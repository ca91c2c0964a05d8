"""
Tests for the error hierarchy and FailureManager.
"""
from bgremoval.utils.failures import (
    BgRemovalError, DecodeError, DeviceError, FailureManager,
    LayoutError, UnsupportedFormatError,
)


class TestDeviceError:
    """Structured device failure."""

    def test_report_format(self):
        error = DeviceError("wait_for_frames", "timeout_ms=100", "device lost", "io_error")

        assert error.report() == (
            "Function:wait_for_frames\n"
            "Arguments:timeout_ms=100\n"
            "Message:device lost\n"
            "Type:io_error"
        )

    def test_device_errors_are_critical(self):
        error = DeviceError("start", "", "no device")

        assert error.critical is True
        assert isinstance(error, BgRemovalError)
        assert "no device" in str(error)

    def test_unsupported_format_is_a_decode_error(self):
        assert issubclass(UnsupportedFormatError, DecodeError)
        assert DecodeError("x").critical is False


class TestFailureManager:
    """Failure counting inside the sliding window."""

    def test_count_by_type(self):
        manager = FailureManager({"threshold": 3, "window_seconds": 60})
        manager.record_failure(DecodeError("a"))
        manager.record_failure(DecodeError("b"))
        manager.record_failure(LayoutError("c"))

        assert manager.count("DecodeError") == 2
        assert manager.count("LayoutError") == 1
        assert manager.count("DeviceError") == 0

    def test_threshold(self):
        manager = FailureManager({"threshold": 2, "window_seconds": 60})
        manager.record_failure(LayoutError("a"))
        assert not manager.is_threshold_exceeded("LayoutError")

        manager.record_failure(LayoutError("b"))
        assert manager.is_threshold_exceeded("LayoutError")

    def test_old_failures_leave_the_window(self):
        manager = FailureManager({"threshold": 1, "window_seconds": 60})
        manager.record_failure(DecodeError("old"))
        manager.failures["DecodeError"] = [0.0]

        assert manager.count("DecodeError") == 0
        assert not manager.is_threshold_exceeded("DecodeError")

    def test_history_and_clear(self):
        manager = FailureManager()
        errors = [DecodeError(str(i)) for i in range(3)]
        for error in errors:
            manager.record_failure(error)

        assert manager.get_recent_history(2) == errors[1:]

        manager.clear()
        assert manager.get_recent_history() == []
        assert manager.count("DecodeError") == 0

    def test_foreign_exceptions_are_counted(self):
        manager = FailureManager()
        manager.record_failure(ValueError("bad"))

        assert manager.count("ValueError") == 1
        assert manager.get_recent_history() == []
