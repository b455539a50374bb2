"""Support backed by conformance resources supplied at runtime."""

from typing import Dict, Optional

from fhir_orchestration.exceptions import DataFormatError
from fhir_orchestration.support.base import Resource, ValidationSupport, canonical


class PrePopulatedSupport(ValidationSupport):
    """Holds StructureDefinitions, CodeSystems and ValueSets keyed by URL."""

    name = "pre-populated-support"

    def __init__(self) -> None:
        """Initialize empty resource maps."""
        self.structure_definitions: Dict[str, Resource] = {}
        self.code_systems: Dict[str, Resource] = {}
        self.value_sets: Dict[str, Resource] = {}

    @staticmethod
    def _register(target: Dict[str, Resource], resource: Resource, expected: str) -> None:
        resource_type = resource.get("resourceType")
        if resource_type != expected:
            raise DataFormatError(
                f"Expected a {expected} resource but found resourceType {resource_type!r}"
            )
        url = resource.get("url")
        if not isinstance(url, str) or not url:
            raise DataFormatError(f"{expected} resource has no canonical url")
        target[canonical(url)] = resource

    def add_structure_definition(self, resource: Resource) -> None:
        """Register a StructureDefinition."""
        self._register(self.structure_definitions, resource, "StructureDefinition")

    def add_code_system(self, resource: Resource) -> None:
        """Register a CodeSystem."""
        self._register(self.code_systems, resource, "CodeSystem")

    def add_value_set(self, resource: Resource) -> None:
        """Register a ValueSet."""
        self._register(self.value_sets, resource, "ValueSet")

    def fetch_structure_definition(self, url: str) -> Optional[Resource]:
        return self.structure_definitions.get(canonical(url))

    def fetch_code_system(self, url: str) -> Optional[Resource]:
        return self.code_systems.get(canonical(url))

    def fetch_value_set(self, url: str) -> Optional[Resource]:
        return self.value_sets.get(canonical(url))

    def __len__(self) -> int:
        return len(self.structure_definitions) + len(self.code_systems) + len(self.value_sets)
