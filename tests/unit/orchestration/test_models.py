"""Tests for the validation result models."""

import socket
from datetime import timedelta

import pytest
from pydantic import ValidationError

from fhir_orchestration.models import (
    Device,
    IssueSeverity,
    Observability,
    SourceLocation,
    ValidationIssue,
    ValidationResult,
    utcnow,
)


@pytest.fixture
def observability():
    """Observability of an imaginary engine."""
    now = utcnow()
    return Observability(
        identity="tests.Engine", name="Test engine", init_at=now, constructed_at=now
    )


class TestValidationResult:
    """Test result construction rules."""

    def test_completed_before_initiated_is_rejected(self, observability):
        """A result cannot complete before it started."""
        now = utcnow()
        with pytest.raises(ValidationError):
            ValidationResult(
                initiated_at=now,
                completed_at=now - timedelta(seconds=1),
                observability=observability,
                is_valid=True,
            )

    def test_same_instant_is_accepted(self, observability):
        """Equal timestamps are allowed."""
        now = utcnow()
        result = ValidationResult(
            initiated_at=now, completed_at=now, observability=observability, is_valid=True
        )

        assert result.issues == ()
        assert result.operation_outcome is None

    def test_result_is_immutable(self, observability):
        """Results cannot be modified after construction."""
        now = utcnow()
        result = ValidationResult(
            initiated_at=now, completed_at=now, observability=observability, is_valid=True
        )

        with pytest.raises(ValidationError):
            result.is_valid = False

    def test_issues_are_kept_in_order(self, observability):
        """Issue order is preserved and stored as a tuple."""
        now = utcnow()
        issues = [
            ValidationIssue(message="first", severity="error"),
            ValidationIssue(message="second", severity="warning"),
        ]
        result = ValidationResult(
            initiated_at=now,
            completed_at=now,
            observability=observability,
            is_valid=False,
            issues=issues,
        )

        assert isinstance(result.issues, tuple)
        assert [issue.message for issue in result.issues] == ["first", "second"]


class TestValidationIssue:
    """Test issue helpers."""

    def test_from_exception(self):
        """Unexpected failures become FATAL issues naming the exception type."""
        issue = ValidationIssue.from_exception(ConnectionError("network down"))

        assert issue.severity == IssueSeverity.FATAL.value
        assert issue.message == "network down"
        assert issue.location == SourceLocation(diagnostics="ConnectionError")

    def test_location_defaults_to_unknown(self):
        """Line and column are absent when not reported."""
        issue = ValidationIssue(message="m", severity="information")

        assert issue.location.line is None
        assert issue.location.column is None
        assert issue.location.diagnostics is None


class TestDevice:
    """Test device identity resolution."""

    def test_resolve_uses_host_name(self, monkeypatch):
        """The host name and its address identify the device."""
        monkeypatch.setattr(socket, "gethostname", lambda: "validator-01")
        monkeypatch.setattr(socket, "gethostbyname", lambda name: "10.0.0.7")

        device = Device.resolve()

        assert device == Device(device_id="10.0.0.7", device_name="validator-01")

    def test_resolve_falls_back_to_placeholder(self, monkeypatch):
        """Resolution failures never raise."""

        def fail(name):
            raise socket.gaierror("Name or service not known")

        monkeypatch.setattr(socket, "gethostname", lambda: "validator-01")
        monkeypatch.setattr(socket, "gethostbyname", fail)

        device = Device.resolve()

        assert device.device_id == "Unable to retrieve the localhost information"
        assert "Name or service not known" in device.device_name
