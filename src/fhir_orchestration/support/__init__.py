"""Validation support chain used by the local rules engine."""

from fhir_orchestration.support.base import (
    CachingValidationSupport,
    CodeValidationResult,
    ValidationSupport,
    ValidationSupportChain,
)
from fhir_orchestration.support.default_profile import DefaultProfileSupport
from fhir_orchestration.support.instance_validator import (
    InstanceValidator,
    ValidationMessage,
    to_operation_outcome,
)
from fhir_orchestration.support.prepopulated import PrePopulatedSupport
from fhir_orchestration.support.terminology import (
    CommonCodeSystemsTerminologySupport,
    InMemoryTerminologySupport,
)

__all__ = [
    "CachingValidationSupport",
    "CodeValidationResult",
    "CommonCodeSystemsTerminologySupport",
    "DefaultProfileSupport",
    "InMemoryTerminologySupport",
    "InstanceValidator",
    "PrePopulatedSupport",
    "ValidationMessage",
    "ValidationSupport",
    "ValidationSupportChain",
    "to_operation_outcome",
]
