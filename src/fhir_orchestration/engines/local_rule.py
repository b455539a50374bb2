"""Local rules engine.

Validates bundles in-process against the requested profile and the
StructureDefinitions, CodeSystems and ValueSets published with it. The
conformance resources are downloaded again on every validation; only the
engine itself is cached by the registry.
"""

import json
from importlib import metadata
from typing import Any, Callable, Dict, List, Mapping, Optional

from fhir_orchestration.engines.base import ValidationEngine, ValidationEngineType
from fhir_orchestration.exceptions import DataFormatError
from fhir_orchestration.fetcher import ResourceFetcher
from fhir_orchestration.models import (
    SourceLocation,
    ValidationIssue,
    ValidationResult,
    utcnow,
)
from fhir_orchestration.support import (
    CachingValidationSupport,
    CommonCodeSystemsTerminologySupport,
    DefaultProfileSupport,
    InMemoryTerminologySupport,
    InstanceValidator,
    PrePopulatedSupport,
    ValidationMessage,
    ValidationSupport,
    ValidationSupportChain,
    to_operation_outcome,
)
from fhir_orchestration.utils.logging import get_logger

logger = get_logger(__name__)


def _library_version(name: str) -> str:
    try:
        return metadata.version(name)
    except metadata.PackageNotFoundError:
        return "unknown"


def parse_json_resource(text: str, expected_type: str) -> Dict[str, Any]:
    """Parse FHIR JSON and check its resourceType.

    Raises:
        DataFormatError: If the text is not a JSON object of the expected type
    """
    try:
        resource = json.loads(text)
    except json.JSONDecodeError as e:
        raise DataFormatError(f"Failed to parse JSON encoded FHIR content: {e}") from e
    if not isinstance(resource, dict):
        raise DataFormatError("FHIR content must be a JSON object")
    resource_type = resource.get("resourceType")
    if resource_type != expected_type:
        raise DataFormatError(
            f"Incorrect resource type found, expected \"{expected_type}\" "
            f"but found \"{resource_type}\""
        )
    return resource


class LocalRuleValidationEngine(ValidationEngine):
    """Engine evaluating profile rules locally."""

    engine_type = ValidationEngineType.LOCAL_RULE

    def __init__(
        self,
        profile_url: Optional[str],
        structure_definition_urls: Optional[Mapping[str, str]] = None,
        code_system_urls: Optional[Mapping[str, str]] = None,
        value_set_urls: Optional[Mapping[str, str]] = None,
        fetcher: Optional[ResourceFetcher] = None,
        fhir_version: str = "4.0.1",
    ):
        """Initialize the engine.

        Args:
            profile_url: URL of the primary (bundle) StructureDefinition
            structure_definition_urls: Named URLs of supporting StructureDefinitions
            code_system_urls: Named URLs of CodeSystems
            value_set_urls: Named URLs of ValueSets
            fetcher: Downloads the conformance resources
            fhir_version: FHIR version the rules are written for
        """
        super().__init__(
            profile_url,
            "Local rules engine (fhirclient {}, FHIR version {})".format(
                _library_version("fhirclient"), fhir_version
            ),
        )
        self.structure_definition_urls = dict(structure_definition_urls or {})
        self.code_system_urls = dict(code_system_urls or {})
        self.value_set_urls = dict(value_set_urls or {})
        self.fetcher = fetcher or ResourceFetcher()

    def _add_resources(
        self,
        kind: str,
        urls: Mapping[str, str],
        add: Callable[[Dict[str, Any]], None],
    ) -> int:
        added = 0
        logger.info("reference_resources_loading", kind=kind, count=len(urls))
        for name, url in urls.items():
            content = self.fetcher.fetch(url)
            if not content.strip():
                logger.warning("reference_resource_empty", kind=kind, name=name, url=url)
                continue
            add(parse_json_resource(content, kind))
            added += 1
            logger.debug("reference_resource_added", kind=kind, name=name, url=url)
        return added

    def build_support_chain(self) -> ValidationSupport:
        """Download the conformance resources and assemble the support chain."""
        pre_populated = PrePopulatedSupport()

        if self.profile_url:
            content = self.fetcher.fetch(self.profile_url)
            if content.strip():
                pre_populated.add_structure_definition(
                    parse_json_resource(content, "StructureDefinition")
                )
            else:
                logger.warning("profile_document_empty", profile_url=self.profile_url)

        self._add_resources(
            "StructureDefinition",
            self.structure_definition_urls,
            pre_populated.add_structure_definition,
        )
        self._add_resources("CodeSystem", self.code_system_urls, pre_populated.add_code_system)
        self._add_resources("ValueSet", self.value_set_urls, pre_populated.add_value_set)

        chain = ValidationSupportChain(
            DefaultProfileSupport(),
            CommonCodeSystemsTerminologySupport(),
            InMemoryTerminologySupport(),
            pre_populated,
        )
        return CachingValidationSupport(chain)

    @staticmethod
    def _to_issue(message: ValidationMessage) -> ValidationIssue:
        return ValidationIssue(
            message=message.message,
            location=SourceLocation(
                line=message.line,
                column=message.column,
                diagnostics=message.location,
            ),
            severity=message.severity.value,
        )

    def validate(self, payload: str) -> ValidationResult:
        initiated_at = utcnow()
        try:
            support = self.build_support_chain()
            bundle = parse_json_resource(payload, "Bundle")
            profiles: List[str] = [self.profile_url] if self.profile_url else []
            messages = InstanceValidator(support).validate_bundle(bundle, profiles)
            is_valid = not any(m.is_error for m in messages)
            logger.info(
                "local_validation_complete",
                profile_url=self.profile_url,
                is_valid=is_valid,
                issues=len(messages),
            )
            return self._result(
                initiated_at,
                is_valid,
                [self._to_issue(m) for m in messages],
                to_operation_outcome(messages),
            )
        except Exception as e:
            logger.error(
                "local_validation_failed",
                profile_url=self.profile_url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._fatal_result(initiated_at, e)
