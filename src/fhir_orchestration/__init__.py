"""FHIR Orchestration: validation of FHIR bundles across pluggable engines.

Usage:
    from fhir_orchestration import OrchestrationEngine

    orchestrator = OrchestrationEngine()
    session = (
        orchestrator.session()
        .with_payloads([bundle_json])
        .with_fhir_profile_url(profile_url)
        .with_user_agent_validation_strategy('{"engines": ["HAPI"]}')
        .build()
    )
    orchestrator.orchestrate(session)
"""

from fhir_orchestration.engines import (
    EmbeddedReferenceValidationEngine,
    LocalRuleValidationEngine,
    RemoteApiValidationEngine,
    ValidationEngine,
    ValidationEngineType,
)
from fhir_orchestration.exceptions import (
    ConfigurationError,
    DataFormatError,
    OrchestrationError,
)
from fhir_orchestration.models import (
    Device,
    IssueSeverity,
    Observability,
    SourceLocation,
    ValidationIssue,
    ValidationResult,
)
from fhir_orchestration.orchestrator import OrchestrationEngine
from fhir_orchestration.registry import EngineKey, EngineRegistry
from fhir_orchestration.session import Session, SessionBuilder
from fhir_orchestration.strategy import parse_validation_strategy

__all__ = [
    "ConfigurationError",
    "DataFormatError",
    "Device",
    "EmbeddedReferenceValidationEngine",
    "EngineKey",
    "EngineRegistry",
    "IssueSeverity",
    "LocalRuleValidationEngine",
    "Observability",
    "OrchestrationEngine",
    "OrchestrationError",
    "RemoteApiValidationEngine",
    "Session",
    "SessionBuilder",
    "SourceLocation",
    "ValidationEngine",
    "ValidationEngineType",
    "ValidationIssue",
    "ValidationResult",
    "parse_validation_strategy",
]
