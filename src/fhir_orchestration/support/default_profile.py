"""Built-in FHIR R4 core definitions.

Provides the base StructureDefinitions (reduced to their required bindings)
and the core code systems and value sets those bindings point to, so that a
bundle is checked against the core rules even when no profile is supplied.
"""

from typing import Dict, List, Optional, Tuple

from fhir_orchestration.support.base import Resource, ValidationSupport, canonical

CORE_BASE_URL = "http://hl7.org/fhir"
STRUCTURE_DEFINITION_BASE = f"{CORE_BASE_URL}/StructureDefinition/"

# system url -> (code, display) pairs
CORE_CODES: Dict[str, List[Tuple[str, str]]] = {
    f"{CORE_BASE_URL}/bundle-type": [
        ("document", "Document"),
        ("message", "Message"),
        ("transaction", "Transaction"),
        ("transaction-response", "Transaction Response"),
        ("batch", "Batch"),
        ("batch-response", "Batch Response"),
        ("history", "History List"),
        ("searchset", "Search Results"),
        ("collection", "Collection"),
    ],
    f"{CORE_BASE_URL}/http-verb": [
        ("GET", "GET"),
        ("HEAD", "HEAD"),
        ("POST", "POST"),
        ("PUT", "PUT"),
        ("DELETE", "DELETE"),
        ("PATCH", "PATCH"),
    ],
    f"{CORE_BASE_URL}/administrative-gender": [
        ("male", "Male"),
        ("female", "Female"),
        ("other", "Other"),
        ("unknown", "Unknown"),
    ],
    f"{CORE_BASE_URL}/observation-status": [
        ("registered", "Registered"),
        ("preliminary", "Preliminary"),
        ("final", "Final"),
        ("amended", "Amended"),
        ("corrected", "Corrected"),
        ("cancelled", "Cancelled"),
        ("entered-in-error", "Entered in Error"),
        ("unknown", "Unknown"),
    ],
    f"{CORE_BASE_URL}/encounter-status": [
        ("planned", "Planned"),
        ("arrived", "Arrived"),
        ("triaged", "Triaged"),
        ("in-progress", "In Progress"),
        ("onleave", "On Leave"),
        ("finished", "Finished"),
        ("cancelled", "Cancelled"),
        ("entered-in-error", "Entered in Error"),
        ("unknown", "Unknown"),
    ],
    f"{CORE_BASE_URL}/search-entry-mode": [
        ("match", "Match"),
        ("include", "Include"),
        ("outcome", "Outcome"),
    ],
}

# resource type -> (element path, max cardinality, value set url)
CORE_BINDINGS: Dict[str, List[Tuple[str, str, str]]] = {
    "Bundle": [
        ("Bundle.type", "1", f"{CORE_BASE_URL}/ValueSet/bundle-type"),
        ("Bundle.entry.request.method", "1", f"{CORE_BASE_URL}/ValueSet/http-verb"),
        ("Bundle.entry.search.mode", "1", f"{CORE_BASE_URL}/ValueSet/search-entry-mode"),
    ],
    "Patient": [
        ("Patient.gender", "1", f"{CORE_BASE_URL}/ValueSet/administrative-gender"),
    ],
    "Observation": [
        ("Observation.status", "1", f"{CORE_BASE_URL}/ValueSet/observation-status"),
    ],
    "Encounter": [
        ("Encounter.status", "1", f"{CORE_BASE_URL}/ValueSet/encounter-status"),
    ],
}


def base_profile_url(resource_type: str) -> str:
    """Canonical URL of the core StructureDefinition for a resource type."""
    return f"{STRUCTURE_DEFINITION_BASE}{resource_type}"


def _code_system(url: str, codes: List[Tuple[str, str]]) -> Resource:
    name = url.rsplit("/", 1)[-1]
    return {
        "resourceType": "CodeSystem",
        "id": name,
        "url": url,
        "name": name,
        "status": "active",
        "content": "complete",
        "concept": [{"code": code, "display": display} for code, display in codes],
    }


def _value_set(system_url: str) -> Resource:
    name = system_url.rsplit("/", 1)[-1]
    return {
        "resourceType": "ValueSet",
        "id": name,
        "url": f"{CORE_BASE_URL}/ValueSet/{name}",
        "name": name,
        "status": "active",
        "compose": {"include": [{"system": system_url}]},
    }


def _structure_definition(resource_type: str, bindings: List[Tuple[str, str, str]]) -> Resource:
    elements = [{"id": resource_type, "path": resource_type, "min": 0, "max": "*"}]
    for path, max_cardinality, value_set in bindings:
        elements.append(
            {
                "id": path,
                "path": path,
                "min": 0,
                "max": max_cardinality,
                "binding": {"strength": "required", "valueSet": value_set},
            }
        )
    return {
        "resourceType": "StructureDefinition",
        "id": resource_type,
        "url": base_profile_url(resource_type),
        "name": resource_type,
        "status": "active",
        "kind": "resource",
        "abstract": False,
        "type": resource_type,
        "derivation": "specialization",
        "snapshot": {"element": elements},
    }


class DefaultProfileSupport(ValidationSupport):
    """Serves the built-in core definitions."""

    name = "default-profile-support"

    def __init__(self) -> None:
        """Build the core resources."""
        self._code_systems = {url: _code_system(url, codes) for url, codes in CORE_CODES.items()}
        self._value_sets = {}
        for system_url in CORE_CODES:
            value_set = _value_set(system_url)
            self._value_sets[value_set["url"]] = value_set
        self._structure_definitions = {
            base_profile_url(resource_type): _structure_definition(resource_type, bindings)
            for resource_type, bindings in CORE_BINDINGS.items()
        }

    def fetch_structure_definition(self, url: str) -> Optional[Resource]:
        return self._structure_definitions.get(canonical(url))

    def fetch_code_system(self, url: str) -> Optional[Resource]:
        return self._code_systems.get(canonical(url))

    def fetch_value_set(self, url: str) -> Optional[Resource]:
        return self._value_sets.get(canonical(url))
