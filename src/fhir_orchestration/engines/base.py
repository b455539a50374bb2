"""Validation engine contract."""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from fhir_orchestration.models import (
    Observability,
    ValidationIssue,
    ValidationResult,
    utcnow,
)


class ValidationEngineType(str, Enum):
    """Known engine variants, valued by their strategy identifiers."""

    LOCAL_RULE = "HAPI"
    REMOTE_API = "HL7-Official-API"
    EMBEDDED_REFERENCE = "HL7-Official-Embedded"


class ValidationEngine(ABC):
    """A pluggable validation backend.

    Engines are immutable once constructed and may be shared between
    sessions and threads.
    """

    engine_type: ValidationEngineType

    def __init__(self, profile_url: Optional[str], description: str):
        """Initialize the engine identity.

        Args:
            profile_url: Profile the engine validates against
            description: Human readable backend description
        """
        init_at = utcnow()
        self._profile_url = profile_url
        cls = type(self)
        self._observability = Observability(
            identity=f"{cls.__module__}.{cls.__qualname__}",
            name=description,
            init_at=init_at,
            constructed_at=utcnow(),
        )

    @property
    def profile_url(self) -> Optional[str]:
        """Profile URL this engine was built for."""
        return self._profile_url

    @property
    def observability(self) -> Observability:
        """Identity and lifecycle timestamps."""
        return self._observability

    @abstractmethod
    def validate(self, payload: str) -> ValidationResult:
        """Validate one payload, blocking until the result is available."""

    def _result(
        self,
        initiated_at: datetime,
        is_valid: bool,
        issues: Sequence[ValidationIssue] = (),
        operation_outcome: Optional[str] = None,
    ) -> ValidationResult:
        return ValidationResult(
            initiated_at=initiated_at,
            completed_at=max(utcnow(), initiated_at),
            profile_url=self._profile_url,
            observability=self._observability,
            is_valid=is_valid,
            operation_outcome=operation_outcome,
            issues=tuple(issues),
        )

    def _fatal_result(self, initiated_at: datetime, exc: BaseException) -> ValidationResult:
        return self._result(initiated_at, False, [ValidationIssue.from_exception(exc)])

    def __repr__(self) -> str:
        return f"{type(self).__name__}(profile_url={self._profile_url!r})"
