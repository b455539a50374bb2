"""Validation engine variants."""

from fhir_orchestration.engines.base import ValidationEngine, ValidationEngineType
from fhir_orchestration.engines.embedded import EmbeddedReferenceValidationEngine
from fhir_orchestration.engines.local_rule import LocalRuleValidationEngine
from fhir_orchestration.engines.remote_api import RemoteApiValidationEngine

__all__ = [
    "EmbeddedReferenceValidationEngine",
    "LocalRuleValidationEngine",
    "RemoteApiValidationEngine",
    "ValidationEngine",
    "ValidationEngineType",
]
