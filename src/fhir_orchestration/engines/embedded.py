"""Embedded reference engine."""

from typing import Optional

from fhir_orchestration.engines.base import ValidationEngine, ValidationEngineType
from fhir_orchestration.models import ValidationResult, utcnow


class EmbeddedReferenceValidationEngine(ValidationEngine):
    """Baseline engine that accepts every payload.

    Used as a placeholder for the embedded HL7 validator and as a comparison
    baseline for the other engines.
    """

    engine_type = ValidationEngineType.EMBEDDED_REFERENCE

    def __init__(self, profile_url: Optional[str]):
        super().__init__(profile_url, "HL7 Official Embedded (reference baseline)")

    def validate(self, payload: str) -> ValidationResult:
        return self._result(utcnow(), True)
