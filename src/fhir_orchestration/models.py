"""Validation result models.

Every engine reports its outcome with the same small set of immutable types:
a ``ValidationResult`` per (payload, engine) pair holding an ordered tuple of
``ValidationIssue`` records, each pointing at a ``SourceLocation``.
"""

import socket
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class IssueSeverity(str, Enum):
    """Severity categories produced by the local engines."""

    FATAL = "FATAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFORMATION = "INFORMATION"


class SourceLocation(BaseModel):
    """Where in the payload an issue was found."""

    model_config = ConfigDict(frozen=True)

    line: Optional[int] = None
    column: Optional[int] = None
    diagnostics: Optional[str] = None


class ValidationIssue(BaseModel):
    """A single finding reported by a validation engine."""

    model_config = ConfigDict(frozen=True)

    message: str
    location: SourceLocation = SourceLocation()
    severity: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ValidationIssue":
        """Describe an unexpected failure as a FATAL issue."""
        return cls(
            message=str(exc),
            location=SourceLocation(diagnostics=type(exc).__name__),
            severity=IssueSeverity.FATAL.value,
        )


class Observability(BaseModel):
    """Identity and lifecycle timestamps of a validation engine."""

    model_config = ConfigDict(frozen=True)

    identity: str
    name: str
    init_at: datetime
    constructed_at: datetime


class ValidationResult(BaseModel):
    """Outcome of validating one payload with one engine."""

    model_config = ConfigDict(frozen=True)

    initiated_at: datetime
    completed_at: datetime
    profile_url: Optional[str] = None
    observability: Observability
    is_valid: bool
    operation_outcome: Optional[str] = None
    issues: Tuple[ValidationIssue, ...] = ()

    @model_validator(mode="after")
    def check_timestamps(self) -> "ValidationResult":
        """A result cannot complete before it was initiated."""
        if self.completed_at < self.initiated_at:
            raise ValueError("completed_at must not be earlier than initiated_at")
        return self


class Device(BaseModel):
    """Identity of the host running the validations."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    device_name: str

    @classmethod
    def resolve(cls) -> "Device":
        """Look up the local address and host name.

        Resolution failures produce a placeholder identity instead of an
        error so that startup is never blocked by name resolution.
        """
        try:
            host_name = socket.gethostname()
            address = socket.gethostbyname(host_name)
            return cls(device_id=address, device_name=host_name)
        except OSError as e:
            return cls(
                device_id="Unable to retrieve the localhost information",
                device_name=str(e),
            )
